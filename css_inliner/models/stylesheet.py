"""Rule tree for compiled stylesheets."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, Tuple, Union


@dataclass(frozen=True)
class Declaration:
    """A single ``name: value`` pair from a rule body."""

    name: str
    value: str
    important: bool = False

    def to_css(self) -> str:
        suffix = "!important" if self.important else ""
        return f"{self.name}:{self.value}{suffix}"


@dataclass(frozen=True)
class StyleRule:
    """A qualified rule: selector list plus declarations."""

    selectors: Tuple[str, ...]
    declarations: Tuple[Declaration, ...]
    order: int = 0

    @property
    def selector(self) -> str:
        return ",".join(self.selectors)

    def to_css(self) -> str:
        body = ";".join(declaration.to_css() for declaration in self.declarations)
        return f"{self.selector}{{{body}}}"


@dataclass(frozen=True)
class ConditionalRule:
    """A conditional group at-rule (``@media``, ``@supports``) wrapping nested rules."""

    keyword: str
    condition: str
    rules: Tuple["Rule", ...]
    order: int = 0

    def to_css(self) -> str:
        prelude = f"@{self.keyword} {self.condition}" if self.condition else f"@{self.keyword}"
        return prelude + "{" + "".join(rule.to_css() for rule in self.rules) + "}"


@dataclass(frozen=True)
class VerbatimRule:
    """Any other at-rule, kept as its source text."""

    keyword: str
    text: str
    order: int = 0

    def to_css(self) -> str:
        return self.text


Rule = Union[StyleRule, ConditionalRule, VerbatimRule]


@dataclass(frozen=True, eq=False)
class Stylesheet:
    """Compiled stylesheet. Instances are shared read-only by every cache caller."""

    key: str
    rules: Tuple[Rule, ...] = field(default_factory=tuple)
    source: str = ""

    def __len__(self) -> int:
        return len(self.rules)

    def to_css(self) -> str:
        return "\n".join(rule.to_css() for rule in self.rules)


def wrap_media(stylesheet: Stylesheet, media: str) -> Stylesheet:
    """Return a copy whose rules sit inside ``@media <media>``."""

    wrapped = ConditionalRule(keyword="media", condition=media, rules=stylesheet.rules, order=0)
    return Stylesheet(key=f"{stylesheet.key}@media {media}", rules=(wrapped,), source=stylesheet.source)


def merge_stylesheets(stylesheets: Iterable[Stylesheet], key: str = "cascade") -> Stylesheet:
    """Concatenate stylesheets into one cascade, renumbering source order."""

    rules = []
    for stylesheet in stylesheets:
        for rule in stylesheet.rules:
            rules.append(replace(rule, order=len(rules)))
    return Stylesheet(key=key, rules=tuple(rules))
