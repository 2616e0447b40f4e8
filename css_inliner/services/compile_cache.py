"""Memoizing, single-flight cache of compiled stylesheets."""

from __future__ import annotations

import asyncio
import hashlib
from collections import OrderedDict
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from css_inliner.core.config import settings
from css_inliner.core.errors import NotFound, ParseFailure
from css_inliner.core.logging import get_logger
from css_inliner.models.stylesheet import Stylesheet
from css_inliner.services.css_parser import parse_stylesheet
from css_inliner.services.remote import RemoteStylesheetFetcher

logger = get_logger(__name__)


class CompileCache:
    """Compiles CSS text, files and URLs at most once per key.

    A key maps either to a completed :class:`Stylesheet` or to the task that is
    producing it. Both maps are only touched between awaits, so concurrent
    callers for one key always attach to the same task and receive the same
    stylesheet object. Completed entries are kept in least-recently-used order
    and the oldest are dropped beyond ``max_entries``.

    Files are only read from inside the base directory.
    """

    def __init__(
        self,
        directory: str | Path = ".",
        fetcher: Optional[RemoteStylesheetFetcher] = None,
        max_entries: Optional[int] = None,
    ) -> None:
        self.directory = Path(directory)
        self.max_entries = max_entries or settings.compile_cache_size
        self._fetcher = fetcher
        self._compiled: "OrderedDict[str, Stylesheet]" = OrderedDict()
        self._pending: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._compiled)

    def __contains__(self, key: str) -> bool:
        return key in self._compiled

    def clear(self) -> None:
        """Forget completed entries. In-flight compiles still finish for their callers."""

        self._compiled.clear()

    async def compile(self, css_text: str) -> Stylesheet:
        """Parse ``css_text``, keyed by a hash of its content."""

        key = "css:" + hashlib.sha1(css_text.encode("utf-8")).hexdigest()
        return await self._memoize(key, lambda: self._parse(css_text, key, None))

    async def load(self, path: str | Path, directory: str | Path | None = None) -> Stylesheet:
        """Read and parse a stylesheet file, keyed by its resolved path."""

        resolved = self.resolve(path, directory)
        key = f"file:{resolved}"
        return await self._memoize(key, lambda: self._load(resolved, key))

    async def fetch(self, url: str) -> Stylesheet:
        """Download and parse a remote stylesheet, keyed by URL."""

        key = f"url:{url}"
        return await self._memoize(key, lambda: self._fetch(url, key))

    def resolve(self, path: str | Path, directory: str | Path | None = None) -> Path:
        """Resolve ``path`` against the base directory; paths escaping it are :class:`NotFound`."""

        base = (Path(directory) if directory is not None else self.directory).resolve()
        candidate = (base / path).resolve()
        if not candidate.is_relative_to(base):
            logger.warning("stylesheet_outside_directory", path=str(path), directory=str(base))
            raise NotFound(f"Stylesheet {path} is outside {base}", source=str(path))
        return candidate

    async def _memoize(self, key: str, factory: Callable[[], Awaitable[Stylesheet]]) -> Stylesheet:
        compiled = self._compiled.get(key)
        if compiled is not None:
            self._compiled.move_to_end(key)
            logger.debug("stylesheet_cache_hit", key=key)
            return compiled

        loop = asyncio.get_running_loop()
        pending = self._pending.get(key)
        if pending is None or pending.get_loop() is not loop:
            pending = loop.create_task(self._run(key, factory))
            self._pending[key] = pending
        else:
            logger.debug("stylesheet_compile_joined", key=key)

        # Shielded so a caller that gives up does not cancel the shared compile.
        return await asyncio.shield(pending)

    async def _run(self, key: str, factory: Callable[[], Awaitable[Stylesheet]]) -> Stylesheet:
        try:
            stylesheet = await factory()
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]
        self._store(key, stylesheet)
        logger.debug("stylesheet_compiled", key=key, rules=len(stylesheet.rules))
        return stylesheet

    def _store(self, key: str, stylesheet: Stylesheet) -> None:
        self._compiled[key] = stylesheet
        self._compiled.move_to_end(key)
        while len(self._compiled) > self.max_entries:
            evicted, _ = self._compiled.popitem(last=False)
            logger.debug("stylesheet_evicted", key=evicted)

    async def _parse(self, css_text: str, key: str, source: Optional[str]) -> Stylesheet:
        return await asyncio.to_thread(parse_stylesheet, css_text, key, source)

    async def _load(self, path: Path, key: str) -> Stylesheet:
        css_text = await asyncio.to_thread(self._read_file, path)
        return await self._parse(css_text, key, str(path))

    async def _fetch(self, url: str, key: str) -> Stylesheet:
        if self._fetcher is None:
            self._fetcher = RemoteStylesheetFetcher()
        css_text = await self._fetcher.fetch(url)
        return await self._parse(css_text, key, url)

    def _read_file(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ParseFailure(f"Stylesheet {path} is not valid UTF-8", source=str(path)) from exc
        except OSError as exc:
            logger.warning("stylesheet_not_found", path=str(path), error=str(exc))
            raise NotFound(f"Unable to read stylesheet {path}", source=str(path)) from exc
