"""Rule selection against a parsed document.

``select_critical`` keeps the rules that style elements considered above the
fold; ``inline_all`` resolves the cascade per element and writes the winning
declarations into ``style`` attributes.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from css_inliner.core.logging import get_logger
from css_inliner.models.stylesheet import (
    ConditionalRule,
    Declaration,
    Rule,
    StyleRule,
    Stylesheet,
)
from css_inliner.services.selectors import (
    Specificity,
    base_selector,
    is_inlinable,
    is_rendered,
    select,
    specificity,
)

logger = get_logger(__name__)

CriticalPredicate = Callable[[Tag], bool]

# At-rules without selectors that critical CSS still needs.
RETAINED_AT_RULES = {
    "font-face",
    "keyframes",
    "-webkit-keyframes",
    "font-feature-values",
    "counter-style",
    "property",
}


def critical_elements(document: BeautifulSoup, selector: Optional[str] = None) -> CriticalPredicate:
    """Build the predicate for elements treated as above the fold.

    Without a selector every rendered element counts. With one, the matched
    elements count together with their ancestors and descendants.
    """

    if not selector:
        return is_rendered

    chosen = set()
    for element in select(document, selector):
        chosen.add(id(element))
        chosen.update(id(parent) for parent in element.parents)
        chosen.update(id(child) for child in element.descendants if isinstance(child, Tag))

    return lambda element: id(element) in chosen and is_rendered(element)


def select_critical(
    stylesheet: Stylesheet,
    document: BeautifulSoup,
    critical: Optional[CriticalPredicate] = None,
) -> Stylesheet:
    """Return the rules of ``stylesheet`` that match a critical element, in source order."""

    predicate = critical or is_rendered
    matches: Dict[str, bool] = {}

    def matches_critical(selector: str) -> bool:
        base = base_selector(selector)
        if base not in matches:
            matches[base] = any(predicate(element) for element in select(document, base))
        return matches[base]

    def walk(rules: Sequence[Rule]) -> Tuple[Rule, ...]:
        kept: List[Rule] = []
        for rule in rules:
            if isinstance(rule, StyleRule):
                if any(matches_critical(selector) for selector in rule.selectors):
                    kept.append(rule)
            elif isinstance(rule, ConditionalRule):
                nested = walk(rule.rules)
                if nested:
                    kept.append(replace(rule, rules=nested))
            elif rule.keyword in RETAINED_AT_RULES:
                kept.append(rule)
        return tuple(kept)

    rules = walk(stylesheet.rules)
    logger.debug("critical_rules_selected", total=len(stylesheet.rules), kept=len(rules))
    return Stylesheet(key=f"critical:{stylesheet.key}", rules=rules)


_Candidate = Tuple[bool, Specificity, int, int, Declaration]


def inline_all(stylesheet: Stylesheet, document: BeautifulSoup) -> List[Rule]:
    """Merge matching declarations into each element's ``style`` attribute.

    Returns the rules that can not live in a ``style`` attribute (conditional
    groups, other at-rules, selectors with state pseudo-classes or
    pseudo-elements), in source order.
    """

    leftovers: List[Rule] = []
    matched: Dict[int, Tuple[Tag, List[_Candidate]]] = {}

    for rule in stylesheet.rules:
        if not isinstance(rule, StyleRule):
            leftovers.append(rule)
            continue

        deferred = []
        for selector in rule.selectors:
            if not is_inlinable(selector):
                deferred.append(selector)
                continue
            weight = specificity(selector)
            for element in select(document, selector):
                if not is_rendered(element):
                    continue
                _, candidates = matched.setdefault(id(element), (element, []))
                for position, declaration in enumerate(rule.declarations):
                    candidates.append((declaration.important, weight, rule.order, position, declaration))

        if deferred:
            leftovers.append(replace(rule, selectors=tuple(deferred)))

    for element, candidates in matched.values():
        candidates.sort(key=lambda candidate: candidate[:4])
        winners: Dict[str, Declaration] = {}
        for *_, declaration in candidates:
            winners[declaration.name] = declaration
        _write_style(element, winners)

    logger.debug("declarations_inlined", elements=len(matched), leftovers=len(leftovers))
    return leftovers


def _write_style(element: Tag, winners: Dict[str, Declaration]) -> None:
    # The element's own style text is kept as written and always wins.
    existing = element.get("style") or ""
    fragments = [fragment.strip() for fragment in existing.split(";") if fragment.strip()]
    present = {fragment.split(":", 1)[0].strip().lower() for fragment in fragments if ":" in fragment}

    additions = [declaration.to_css() for name, declaration in winners.items() if name not in present]
    if additions:
        element["style"] = ";".join(fragments + additions)
