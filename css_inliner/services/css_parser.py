"""Build :class:`Stylesheet` rule trees from CSS text with tinycss2."""

from __future__ import annotations

import re
from typing import List, Sequence, Tuple

import tinycss2

from css_inliner.core.errors import ParseFailure
from css_inliner.core.logging import get_logger
from css_inliner.models.stylesheet import (
    ConditionalRule,
    Declaration,
    Rule,
    StyleRule,
    Stylesheet,
    VerbatimRule,
)

logger = get_logger(__name__)

CONDITIONAL_AT_RULES = {"media", "supports"}

_WHITESPACE = re.compile(r"\s+")


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def split_selector_list(tokens: Sequence) -> Tuple[str, ...]:
    """Split a rule prelude on top-level commas into normalized selectors."""

    selectors: List[str] = []
    current: List = []
    for token in tokens:
        if token.type == "literal" and token.value == ",":
            selectors.append(_normalize(tinycss2.serialize(current)))
            current = []
        else:
            current.append(token)
    selectors.append(_normalize(tinycss2.serialize(current)))
    return tuple(selector for selector in selectors if selector)


def parse_declarations(tokens: Sequence, source: str | None = None) -> Tuple[Declaration, ...]:
    declarations: List[Declaration] = []
    for node in tinycss2.parse_declaration_list(tokens, skip_comments=True, skip_whitespace=True):
        if node.type == "declaration":
            value = _normalize(tinycss2.serialize(node.value))
            declarations.append(Declaration(name=node.lower_name, value=value, important=node.important))
        elif node.type == "error":
            logger.debug("declaration_dropped", reason=node.message, source=source)
    return tuple(declarations)


def _convert(nodes: Sequence, source: str | None, top_level: bool) -> Tuple[Rule, ...]:
    rules: List[Rule] = []
    for node in nodes:
        if node.type == "error":
            if top_level:
                raise ParseFailure(f"Invalid CSS at line {node.source_line}: {node.message}", source=source)
            logger.debug("nested_rule_dropped", reason=node.message, source=source)
            continue

        if node.type == "qualified-rule":
            selectors = split_selector_list(node.prelude)
            if not selectors:
                logger.debug("rule_without_selector", line=node.source_line, source=source)
                continue
            rules.append(
                StyleRule(
                    selectors=selectors,
                    declarations=parse_declarations(node.content, source),
                    order=len(rules),
                )
            )
            continue

        if node.type == "at-rule":
            keyword = node.lower_at_keyword
            if keyword in CONDITIONAL_AT_RULES and node.content is not None:
                nested = tinycss2.parse_rule_list(node.content, skip_comments=True, skip_whitespace=True)
                rules.append(
                    ConditionalRule(
                        keyword=keyword,
                        condition=_normalize(tinycss2.serialize(node.prelude)),
                        rules=_convert(nested, source, top_level=False),
                        order=len(rules),
                    )
                )
            else:
                rules.append(VerbatimRule(keyword=keyword, text=node.serialize().strip(), order=len(rules)))

    return tuple(rules)


def parse_stylesheet(css_text: str, key: str, source: str | None = None) -> Stylesheet:
    """Parse ``css_text`` into a stylesheet identified by ``key``.

    Errors at stylesheet level raise :class:`ParseFailure`; invalid declarations
    inside a rule are dropped the way a browser would drop them.
    """

    nodes = tinycss2.parse_stylesheet(css_text, skip_comments=True, skip_whitespace=True)
    rules = _convert(nodes, source, top_level=True)
    return Stylesheet(key=key, rules=rules, source=source or "")
