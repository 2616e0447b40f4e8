"""HTML parsing, serialization and the rewrites applied after rule selection."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from bs4 import BeautifulSoup, Comment, Tag
from bs4.builder import ParserRejectedMarkup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from css_inliner.core.errors import ParseFailure
from css_inliner.core.logging import get_logger
from css_inliner.models.stylesheet import Rule, Stylesheet

logger = get_logger(__name__)


def _escape(value: str) -> str:
    return EntitySubstitution.substitute_xml(value).replace('"', "&quot;")


class SourceOrderFormatter(HTMLFormatter):
    """HTML formatter that writes attributes in the order they were parsed."""

    def attributes(self, tag: Tag):
        if tag.attrs is None:
            return []
        return list(tag.attrs.items())


HTML_FORMATTER = SourceOrderFormatter(
    entity_substitution=_escape,
    void_element_close_prefix=None,
    empty_attributes_are_booleans=True,
)


def parse_document(html: str) -> BeautifulSoup:
    """Parse ``html`` keeping attribute values exactly as written."""

    try:
        return BeautifulSoup(html, "html.parser", multi_valued_attributes=None)
    except ParserRejectedMarkup as exc:
        raise ParseFailure(f"HTML parser rejected the document: {exc}") from exc


def serialize_document(document: BeautifulSoup) -> str:
    return document.decode(formatter=HTML_FORMATTER)


def is_stylesheet_link(element: Tag) -> bool:
    rel = (element.get("rel") or "").lower().split()
    return element.name == "link" and "stylesheet" in rel and bool(element.get("href"))


def stylesheet_elements(document: BeautifulSoup) -> List[Tag]:
    """``<style>`` and ``<link rel="stylesheet">`` elements in document order."""

    return [
        element
        for element in document.find_all(["style", "link"])
        if element.name == "style" or is_stylesheet_link(element)
    ]


def _insert_style(container: Tag, css_text: str, document: BeautifulSoup) -> Tag:
    style = document.new_tag("style")
    style.string = css_text
    container.insert(0, style)
    return style


def apply_critical(document: BeautifulSoup, critical_rules: Stylesheet) -> BeautifulSoup:
    """Replace every ``<style>`` with one consolidated block at the top of ``<head>``.

    ``<link>`` elements stay where they are. A document with no ``<head>`` has
    nowhere to receive the block and is returned unchanged.
    """

    head = document.find("head")
    if head is None:
        logger.info("critical_path_skipped", reason="document has no head element")
        return document

    for style in document.find_all("style"):
        style.decompose()

    _insert_style(head, critical_rules.to_css(), document)
    return document


def _is_conditional_comment(comment: Comment) -> bool:
    return comment.lstrip().startswith("[if") or comment.rstrip().endswith("<![endif]")


def apply_inline(
    document: BeautifulSoup,
    leftover_rules: Sequence[Rule],
    consumed_links: Iterable[Tag] = (),
) -> BeautifulSoup:
    """Clean up after inlining.

    Removes ``<style>`` elements, the ``<link>`` elements whose rules were
    inlined and HTML comments (conditional comments stay). Rules that could not
    be inlined go into a single ``<style>`` at the top of ``<head>``, or at the
    top of the document when there is no head.
    """

    for style in document.find_all("style"):
        style.decompose()
    for link in consumed_links:
        link.decompose()
    for comment in document.find_all(string=lambda text: isinstance(text, Comment)):
        if not _is_conditional_comment(comment):
            comment.extract()

    if leftover_rules:
        container = document.find("head") or document
        _insert_style(container, "\n".join(rule.to_css() for rule in leftover_rules), document)

    return document
