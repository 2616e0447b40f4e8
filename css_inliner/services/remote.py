"""Fetching of absolute-URL stylesheets over HTTP."""

from __future__ import annotations

import httpx

from css_inliner.core.config import settings
from css_inliner.core.errors import NotFound
from css_inliner.core.logging import get_logger

logger = get_logger(__name__)


class RemoteStylesheetFetcher:
    """Downloads stylesheet text referenced by ``<link href="https://...">``.

    Each fetch opens and closes its own client, so a fetcher can be shared by
    callers running on different event loops.
    """

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout or settings.remote_timeout_seconds
        self._transport = transport

    async def fetch(self, url: str) -> str:
        """Return the body of ``url`` or raise :class:`NotFound`."""

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("remote_stylesheet_failed", url=url, error=str(exc))
            raise NotFound(f"Unable to fetch stylesheet {url}: {exc}", source=url) from exc

        logger.debug("remote_stylesheet_fetched", url=url, bytes=len(response.content))
        return response.text
