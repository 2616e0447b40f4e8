"""Template tag shielding.

Handlebars tags are swapped for inert placeholders before the HTML and CSS
parsers see a document, and swapped back once the document is serialized.
The scanner is a single left-to-right pass that tracks quote, path segment
and raw block state, so a ``}}`` inside ``"..."`` or ``[...]`` never closes a
tag and anything between ``{{{{raw}}}}`` and ``{{{{/raw}}}}`` stays opaque.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from css_inliner.core.logging import get_logger
from css_inliner.models.template import ShieldResult, Tag, TagKind

logger = get_logger(__name__)

TagExtractor = Callable[[str], Sequence[str]]
TemplateOption = Union[None, str, TagExtractor]

PLACEHOLDER_PREFIX = "__tpl_"

_LONG_COMMENT_END = re.compile(r"--~?\}\}")
_RAW_NAME = re.compile(r"[\s~]*([^\s}~]+)")
_ELSE = re.compile(r"else(?=[\s~}])")


class HandlebarsScanner:
    """Finds every live Handlebars tag in a string."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.length = len(text)

    def scan(self, nested: bool = False) -> List[Tag]:
        """Return tags in document order.

        Escaped tags are reported as ``escaped-literal``. With ``nested``, each
        tag is followed by the tags found inside its own delimiters.
        """

        tags: List[Tag] = []
        text = self.text
        pos = 0

        while True:
            start = text.find("{{", pos)
            if start < 0:
                break

            if self._is_escaped(start):
                found = self._scan_tag(start)
                if found is None:
                    pos = start + 2
                    continue
                end = found[0]
                tags.append(Tag(text=text[start:end], start=start, end=end, kind=TagKind.escaped_literal))
                pos = end
                continue

            if text.startswith("{{{{", start):
                pos = self._scan_raw_block(start, tags)
                continue

            found = self._scan_tag(start)
            if found is None:
                pos = start + 1
                continue

            own_end, kind = found
            end = self._coalesce(own_end, kind)
            tags.append(Tag(text=text[start:end], start=start, end=end, kind=kind))
            if nested and kind is not TagKind.comment:
                tags.extend(self._inner_tags(start, own_end))
            pos = end

        return tags

    def _inner_tags(self, start: int, end: int) -> List[Tag]:
        """Tags inside the delimiters of the tag spanning ``start:end``, with offsets into this text."""

        width = 3 if self.text.startswith("{{{", start) else 2
        offset = start + width
        inner = HandlebarsScanner(self.text[offset : end - width]).scan(nested=True)
        return [replace(tag, start=tag.start + offset, end=tag.end + offset) for tag in inner]

    def _is_escaped(self, start: int) -> bool:
        backslashes = 0
        i = start - 1
        while i >= 0 and self.text[i] == "\\":
            backslashes += 1
            i -= 1
        return backslashes % 2 == 1

    def _scan_tag(self, start: int) -> Optional[Tuple[int, TagKind]]:
        """Return ``(end, kind)`` for the tag opening at ``start`` or None if unterminated."""

        text = self.text
        if text.startswith("{{{", start):
            end = self._find_close(start + 3, "}}}")
            return (end, TagKind.unescaped_expression) if end is not None else None

        body = self._skip_strip_markers(start + 2)
        kind = self._classify(body)
        if kind is TagKind.comment:
            end = self._comment_end(body)
        else:
            end = self._find_close(start + 2, "}}")
        return (end, kind) if end is not None else None

    def _skip_strip_markers(self, pos: int) -> int:
        while pos < self.length and (self.text[pos] == "~" or self.text[pos].isspace()):
            pos += 1
        return pos

    def _classify(self, pos: int) -> TagKind:
        text = self.text
        sigil = text[pos : pos + 1]

        if sigil == "!":
            return TagKind.comment
        if sigil == ">":
            return TagKind.partial
        if sigil == "&":
            return TagKind.unescaped_expression
        if sigil == "#":
            return TagKind.block_open
        if sigil == "/":
            return TagKind.block_close
        if sigil == "^":
            # A bare ``{{^}}`` is an inverse section, ``{{^name}}`` opens an inverted block.
            rest = self._skip_strip_markers(pos + 1)
            return TagKind.block_inverse if text.startswith("}}", rest) else TagKind.block_open
        if _ELSE.match(text, pos):
            return TagKind.block_inverse
        return TagKind.expression

    def _comment_end(self, pos: int) -> Optional[int]:
        # ``{{!-- ... --}}`` may contain ``}}``; ``{{! ... }}`` ends at the first one.
        if self.text.startswith("!--", pos):
            match = _LONG_COMMENT_END.search(self.text, pos + 3)
            return match.end() if match else None
        end = self.text.find("}}", pos)
        return end + 2 if end >= 0 else None

    def _find_close(self, pos: int, close: str) -> Optional[int]:
        text = self.text
        quote: Optional[str] = None
        in_segment = False
        i = pos

        while i < self.length:
            ch = text[i]
            if quote:
                if ch == "\\":
                    i += 1
                elif ch == quote:
                    quote = None
            elif in_segment:
                if ch == "]":
                    in_segment = False
            elif ch in "\"'":
                quote = ch
            elif ch == "[":
                in_segment = True
            elif text.startswith(close, i):
                return i + len(close)
            i += 1

        return None

    def _coalesce(self, end: int, kind: TagKind) -> int:
        """Extend a block tag over an immediately adjacent empty ``{{else}}`` / close tag."""

        if kind is TagKind.block_open:
            following = self._peek(end)
            if following and following[1] is TagKind.block_inverse:
                end = following[0]
                following = self._peek(end)
            if following and following[1] is TagKind.block_close:
                end = following[0]
        elif kind is TagKind.block_inverse:
            following = self._peek(end)
            if following and following[1] is TagKind.block_close:
                end = following[0]
        return end

    def _peek(self, pos: int) -> Optional[Tuple[int, TagKind]]:
        if not self.text.startswith("{{", pos) or self.text.startswith("{{{", pos):
            return None
        return self._scan_tag(pos)

    def _scan_raw_block(self, start: int, tags: List[Tag]) -> int:
        """Record raw block open/close tags, leaving the interior untouched."""

        text = self.text
        open_end = self._find_close(start + 4, "}}}}")
        if open_end is None:
            return start + 1

        tags.append(
            Tag(text=text[start:open_end], start=start, end=open_end, kind=TagKind.raw_block_open)
        )

        name_match = _RAW_NAME.match(text, start + 4)
        name = name_match.group(1) if name_match else ""
        marker = re.compile(r"\{\{\{\{(/?)[\s~]*" + re.escape(name) + r"(?=[\s~}])[^}]*\}\}\}\}")

        depth = 1
        for match in marker.finditer(text, open_end):
            if not match.group(1):
                depth += 1
                continue
            depth -= 1
            if depth == 0:
                tags.append(
                    Tag(
                        text=match.group(0),
                        start=match.start(),
                        end=match.end(),
                        kind=TagKind.raw_block_close,
                    )
                )
                return match.end()

        logger.debug("raw_block_unterminated", name=name, offset=start)
        return open_end


def handlebars(text: str) -> List[str]:
    """Return the Handlebars tags found in ``text``, in document order, outer tags first."""

    return [
        tag.text
        for tag in HandlebarsScanner(text).scan(nested=True)
        if tag.kind is not TagKind.escaped_literal
    ]


TEMPLATE_DIALECTS: Dict[str, TagExtractor] = {"handlebars": handlebars}


def resolve_template(template: TemplateOption) -> Optional[TagExtractor]:
    """Map a template option (name, callable or None) to a tag extractor."""

    if template is None:
        return None
    if callable(template):
        return template
    try:
        return TEMPLATE_DIALECTS[template.lower()]
    except KeyError:
        raise ValueError(f"Unknown template dialect: {template!r}") from None


def _locate(text: str, extracted: Sequence[str]) -> List[Tag]:
    """Find every occurrence of the extractor's tag strings, longest first."""

    distinct = sorted({tag for tag in extracted if tag}, key=len, reverse=True)
    if not distinct:
        return []
    pattern = re.compile("|".join(re.escape(tag) for tag in distinct))
    return [
        Tag(text=match.group(0), start=match.start(), end=match.end(), kind=TagKind.expression)
        for match in pattern.finditer(text)
    ]


def _nonce_for(text: str) -> str:
    nonce = hashlib.sha1(text.encode("utf-8")).hexdigest()[:8]
    while f"{PLACEHOLDER_PREFIX}{nonce}_" in text:
        nonce = hashlib.sha1((text + nonce).encode("utf-8")).hexdigest()[:8]
    return nonce


def scan_tags(text: str, template: TemplateOption = handlebars, nested: bool = False) -> List[Tag]:
    extractor = resolve_template(template)
    if extractor is None:
        return []
    if extractor is handlebars:
        return HandlebarsScanner(text).scan(nested=nested)
    return _locate(text, extractor(text))


def _live_tags(text: str, template: TemplateOption) -> List[Tag]:
    return [tag for tag in scan_tags(text, template, nested=True) if tag.kind is not TagKind.escaped_literal]


def shield(text: str, template: TemplateOption = handlebars) -> ShieldResult:
    """Replace every template tag in ``text`` with a placeholder.

    Identical tag text shares one ordinal and one placeholder. A tag nested in
    another tag gets its own ordinal after the outer one, but only the outer
    span is replaced. Placeholders only use lowercase letters, digits and
    underscores so they pass through HTML attribute names, attribute values,
    text and CSS identifiers unchanged.
    """

    spans = _live_tags(text, template)
    if not spans:
        return ShieldResult(shielded=text, tags=[], nonce="")

    nonce = _nonce_for(text)
    ordinals: Dict[str, int] = {}
    tags: List[Tag] = []
    pieces: List[str] = []
    pos = 0

    for span in spans:
        index = ordinals.setdefault(span.text, len(ordinals))
        placeholder = f"{PLACEHOLDER_PREFIX}{nonce}_{index}__"
        tags.append(
            Tag(
                text=span.text,
                start=span.start,
                end=span.end,
                kind=span.kind,
                index=index,
                placeholder=placeholder,
            )
        )
        if span.start < pos:
            continue
        pieces.append(text[pos : span.start])
        pieces.append(placeholder)
        pos = span.end

    pieces.append(text[pos:])
    logger.debug("template_tags_shielded", tags=len(tags), distinct=len(ordinals))
    return ShieldResult(shielded="".join(pieces), tags=tags, nonce=nonce)


def restore(shielded: str, tags: Sequence[Tag]) -> str:
    """Put the original tag text back in place of each placeholder."""

    if not tags:
        return shielded
    mapping = {tag.placeholder: tag.text for tag in tags}
    pattern = re.compile("|".join(re.escape(p) for p in sorted(mapping, key=len, reverse=True)))
    return pattern.sub(lambda match: mapping[match.group(0)], shielded)


def extract_tags(text: str, template: TemplateOption = handlebars) -> List[str]:
    """Tag text values :func:`shield` records, each tag before the tags nested in it."""

    return [tag.text for tag in _live_tags(text, template)]
