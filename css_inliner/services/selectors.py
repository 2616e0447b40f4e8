"""Selector analysis: specificity, base forms for matching, and DOM matching."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterator, List, Optional, Sequence, Tuple

import soupsieve
import tinycss2
from bs4 import BeautifulSoup, Tag

from css_inliner.core.logging import get_logger
from css_inliner.services.css_parser import split_selector_list

logger = get_logger(__name__)

Specificity = Tuple[int, int, int]

COMBINATORS = {">", "+", "~"}

# Pseudo-classes that depend on interaction or navigation state. Presence of
# the element they qualify is enough for a rule to count as used.
DYNAMIC_PSEUDO_CLASSES = {
    "hover",
    "active",
    "focus",
    "focus-within",
    "focus-visible",
    "visited",
    "link",
    "any-link",
    "local-link",
    "target",
    "target-within",
    "user-valid",
    "user-invalid",
    "playing",
    "paused",
    "fullscreen",
}

LEGACY_PSEUDO_ELEMENTS = {"before", "after", "first-line", "first-letter"}

FORGIVING_PSEUDO_FUNCTIONS = {"is", "not", "has", "matches", "-webkit-any", "-moz-any"}

NON_RENDERED_ELEMENTS = {"head", "title", "meta", "link", "style", "script", "base", "noscript", "template"}


def _tokens(selector: str) -> List:
    return tinycss2.parse_component_value_list(selector, skip_comments=True)


def _is_colon(token) -> bool:
    return token is not None and token.type == "literal" and token.value == ":"


def _pseudo_name(token) -> Optional[str]:
    if token is None:
        return None
    if token.type == "ident":
        return token.lower_value
    if token.type == "function":
        return token.lower_name
    return None


def _compounds(tokens: Sequence) -> Iterator[Tuple[Optional[str], List]]:
    """Yield ``(combinator, compound tokens)`` pairs; the first combinator is None."""

    combinator: Optional[str] = None
    compound: List = []
    seen = False
    for token in tokens:
        is_combinator = token.type == "literal" and token.value in COMBINATORS
        if token.type == "whitespace" or is_combinator:
            if compound:
                yield (combinator if seen else None), compound
                compound = []
                seen = True
                combinator = " "
            if is_combinator:
                combinator = token.value
        else:
            compound.append(token)
    if compound:
        yield (combinator if seen else None), compound


def _strip_state(compound: Sequence) -> Tuple[List, bool]:
    """Drop dynamic pseudo-classes and pseudo-elements from one compound."""

    kept: List = []
    stripped = False
    i = 0
    while i < len(compound):
        token = compound[i]
        if _is_colon(token):
            following = compound[i + 1] if i + 1 < len(compound) else None
            if _is_colon(following):
                i += 3
                stripped = True
                continue
            name = _pseudo_name(following)
            if name and (name in DYNAMIC_PSEUDO_CLASSES or name in LEGACY_PSEUDO_ELEMENTS or name.startswith("-")):
                i += 2
                stripped = True
                continue
        kept.append(token)
        i += 1
    return kept, stripped


def base_selector(selector: str) -> str:
    """Return ``selector`` without state pseudo-classes or pseudo-elements.

    ``a:hover`` becomes ``a``, ``p::first-line`` becomes ``p`` and a compound
    made only of such pseudos (``:hover > a``) becomes ``*``.
    """

    parts: List[str] = []
    for combinator, compound in _compounds(_tokens(selector)):
        kept, _ = _strip_state(compound)
        text = tinycss2.serialize(kept).strip() or "*"
        if combinator is None:
            parts.append(text)
        elif combinator == " ":
            parts.append(" " + text)
        else:
            parts.append(f" {combinator} {text}")
    return "".join(parts)


def is_inlinable(selector: str) -> bool:
    """True when the selector carries no state pseudo-class or pseudo-element."""

    return not any(_strip_state(compound)[1] for _, compound in _compounds(_tokens(selector)))


def _add(first: Specificity, second: Specificity) -> Specificity:
    return (first[0] + second[0], first[1] + second[1], first[2] + second[2])


def _compound_specificity(tokens: Sequence) -> Specificity:
    a = b = c = 0
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token.type == "hash":
            a += 1
        elif token.type == "[] block":
            b += 1
        elif token.type == "literal" and token.value == ".":
            b += 1
            i += 1
        elif _is_colon(token):
            following = tokens[i + 1] if i + 1 < len(tokens) else None
            if _is_colon(following):
                c += 1
                i += 2
            elif following is not None and following.type == "function":
                name = following.lower_name
                if name in FORGIVING_PSEUDO_FUNCTIONS:
                    arguments = split_selector_list(following.arguments)
                    best = max((specificity(argument) for argument in arguments), default=(0, 0, 0))
                    a, b, c = _add((a, b, c), best)
                elif name != "where":
                    b += 1
                i += 1
            else:
                if _pseudo_name(following) in LEGACY_PSEUDO_ELEMENTS:
                    c += 1
                else:
                    b += 1
                i += 1
        elif token.type == "ident":
            c += 1
        i += 1
    return (a, b, c)


@lru_cache(maxsize=4096)
def specificity(selector: str) -> Specificity:
    """Compute ``(ids, classes, types)`` for a single complex selector."""

    total: Specificity = (0, 0, 0)
    for _, compound in _compounds(_tokens(selector)):
        total = _add(total, _compound_specificity(compound))
    return total


def select(document: BeautifulSoup, selector: str) -> List[Tag]:
    """Elements matching ``selector``; selectors the matcher rejects match nothing."""

    try:
        return soupsieve.select(selector, document)
    except (soupsieve.SelectorSyntaxError, NotImplementedError, ValueError) as exc:
        logger.info("selector_rejected", selector=selector, error=str(exc))
        return []


def is_rendered(element: Tag) -> bool:
    if element.name in NON_RENDERED_ELEMENTS:
        return False
    return not any(parent.name in NON_RENDERED_ELEMENTS for parent in element.parents)
