"""Records produced by template tag shielding."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class TagKind(str, Enum):
    """Kinds of template markup recognized by the scanner."""

    expression = "expression"
    unescaped_expression = "unescaped-expression"
    block_open = "block-open"
    block_inverse = "block-inverse"
    block_close = "block-close"
    comment = "comment"
    partial = "partial"
    raw_block_open = "raw-block-open"
    raw_block_close = "raw-block-close"
    escaped_literal = "escaped-literal"


@dataclass(frozen=True)
class Tag:
    """A single template tag occurrence in the original document."""

    text: str
    start: int
    end: int
    kind: TagKind
    index: int = 0
    placeholder: str = ""


@dataclass
class ShieldResult:
    """Shielded text together with the tags needed to restore it."""

    shielded: str
    tags: List[Tag] = field(default_factory=list)
    nonce: str = ""

    def __iter__(self):
        # Allows ``shielded, tags = shield(html)``.
        yield self.shielded
        yield self.tags
