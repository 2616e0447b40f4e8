"""Inline and critical-path pipelines.

Every document goes through the same sequence: shield template tags, parse,
compile the stylesheets it references, select or inline rules, rewrite,
serialize, restore template tags. A failure at any step fails the call and
no HTML is produced.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup, Tag

from css_inliner.core.config import settings
from css_inliner.core.logging import get_logger
from css_inliner.models.stylesheet import Stylesheet, merge_stylesheets, wrap_media
from css_inliner.models.template import ShieldResult
from css_inliner.services.compile_cache import CompileCache
from css_inliner.services.critical_selector import critical_elements, inline_all, select_critical
from css_inliner.services.document import (
    apply_critical,
    apply_inline,
    parse_document,
    serialize_document,
    stylesheet_elements,
)
from css_inliner.services.tag_shield import TemplateOption, resolve_template, restore, shield

logger = get_logger(__name__)

REMOTE_SCHEMES = {"http", "https"}


class CSSInliner:
    """Inlines or extracts critical CSS for HTML documents and templates."""

    def __init__(
        self,
        directory: str | Path | None = None,
        template: TemplateOption = None,
        above_the_fold: Optional[str] = None,
        fetch_remote: Optional[bool] = None,
        cache: Optional[CompileCache] = None,
    ) -> None:
        self.directory = Path(directory if directory is not None else settings.template_directory)
        self.template = resolve_template(template)
        self.above_the_fold = above_the_fold
        self.fetch_remote = settings.fetch_remote_stylesheets if fetch_remote is None else fetch_remote
        self.cache = cache if cache is not None else CompileCache(self.directory)

    async def inline_css(self, html: str) -> str:
        """Write every matching declaration into ``style`` attributes."""

        shielded = self._shield(html)
        document = parse_document(shielded.shielded)
        sources = await self._collect(document)

        cascade = merge_stylesheets(stylesheet for _, stylesheet in sources)
        leftovers = inline_all(cascade, document)
        consumed = [element for element, _ in sources if element.name == "link"]
        apply_inline(document, leftovers, consumed)

        output = restore(serialize_document(document), shielded.tags)
        logger.info(
            "inline_css_completed",
            stylesheets=len(sources),
            rules=len(cascade.rules),
            leftover_rules=len(leftovers),
            template_tags=len(shielded.tags),
        )
        return output

    async def critical_path(self, html: str) -> str:
        """Consolidate the critical rules into one ``<style>`` at the top of ``<head>``."""

        shielded = self._shield(html)
        document = parse_document(shielded.shielded)
        sources = await self._collect(document)

        cascade = merge_stylesheets(stylesheet for _, stylesheet in sources)
        critical = select_critical(cascade, document, critical_elements(document, self.above_the_fold))
        apply_critical(document, critical)

        output = restore(serialize_document(document), shielded.tags)
        logger.info(
            "critical_path_completed",
            stylesheets=len(sources),
            rules=len(cascade.rules),
            critical_rules=len(critical.rules),
            template_tags=len(shielded.tags),
        )
        return output

    def _shield(self, html: str) -> ShieldResult:
        if self.template is None:
            return ShieldResult(shielded=html)
        return shield(html, self.template)

    async def _collect(self, document: BeautifulSoup) -> List[Tuple[Tag, Stylesheet]]:
        """Compile the stylesheets referenced by ``document``, in document order."""

        pending = []
        for element in stylesheet_elements(document):
            if element.name == "style":
                pending.append((element, self.cache.compile(element.get_text())))
                continue
            loader = self._link_loader(element["href"])
            if loader is not None:
                pending.append((element, loader))

        # Every load runs to completion; the first failure in document order is raised.
        stylesheets = await asyncio.gather(*(loader for _, loader in pending), return_exceptions=True)
        for stylesheet in stylesheets:
            if isinstance(stylesheet, BaseException):
                raise stylesheet

        sources = []
        for (element, _), stylesheet in zip(pending, stylesheets):
            media = (element.get("media") or "").strip()
            if media and media.lower() != "all":
                stylesheet = wrap_media(stylesheet, media)
            sources.append((element, stylesheet))
        return sources

    def _link_loader(self, href: str):
        href = href.strip()
        parts = urlsplit(href)

        if parts.scheme in REMOTE_SCHEMES or href.startswith("//"):
            if not self.fetch_remote:
                logger.debug("remote_stylesheet_skipped", href=href)
                return None
            url = href if parts.scheme else f"https:{href}"
            return self.cache.fetch(url)

        if parts.scheme:
            logger.debug("stylesheet_scheme_unsupported", href=href)
            return None

        return self.cache.load(unquote(parts.path).lstrip("/"))


@lru_cache(maxsize=32)
def get_inliner(
    directory: Optional[str] = None,
    template: Optional[str] = None,
    above_the_fold: Optional[str] = None,
) -> CSSInliner:
    """Shared inliner (and compile cache) per configuration."""

    return CSSInliner(
        directory=directory or settings.template_directory,
        template=template if template is not None else settings.default_template,
        above_the_fold=above_the_fold or settings.above_the_fold_selector,
    )


async def inline_css(html: str, **options) -> str:
    """Inline ``html`` with the shared inliner for ``options``."""

    return await get_inliner(**options).inline_css(html)


async def critical_path(html: str, **options) -> str:
    """Critical-path ``html`` with the shared inliner for ``options``."""

    return await get_inliner(**options).critical_path(html)
