"""Downloads images referenced by a captured page."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Optional
from urllib.parse import urlsplit

import aiohttp

logger = logging.getLogger(__name__)

USER_AGENT = "inkreader/1.0"


class ImageFetcher:
    """Fetches page images over HTTP with size, count and time limits.

    Failed downloads are logged and skipped; the layout engine draws a
    placeholder for any image it has no bytes for.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_bytes: int = 5 * 1024 * 1024,
        max_images: int = 32,
        concurrency: int = 4,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=min(timeout, 5.0))
        self._max_bytes = max_bytes
        self._max_images = max_images
        self._concurrency = concurrency
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=self._concurrency)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": USER_AGENT},
            )
            logger.debug("Created image fetch session")
        return self._session

    async def fetch_all(self, urls: Iterable[str]) -> dict[str, bytes]:
        """Download up to ``max_images`` http(s) images concurrently.

        Args:
            urls: Absolute image URLs in document order

        Returns:
            Image bytes keyed by URL, only for successful downloads
        """
        wanted = [url for url in dict.fromkeys(urls) if urlsplit(url).scheme in ("http", "https")]
        if len(wanted) > self._max_images:
            logger.info("Fetching %d of %d images", self._max_images, len(wanted))
            wanted = wanted[: self._max_images]
        if not wanted:
            return {}

        session = await self._get_session()
        results = await asyncio.gather(*(self._fetch(session, url) for url in wanted))
        images = {url: data for url, data in zip(wanted, results) if data is not None}
        logger.info("Fetched %d of %d images", len(images), len(wanted))
        return images

    async def _fetch(self, session: aiohttp.ClientSession, url: str) -> Optional[bytes]:
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning("Image %s returned HTTP %d", url, response.status)
                    return None
                if response.content_length is not None and response.content_length > self._max_bytes:
                    logger.warning("Image %s is too large (%d bytes)", url, response.content_length)
                    return None
                data = bytearray()
                async for chunk in response.content.iter_chunked(64 * 1024):
                    data.extend(chunk)
                    if len(data) > self._max_bytes:
                        logger.warning("Image %s exceeds %d bytes", url, self._max_bytes)
                        return None
                return bytes(data)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Fetching image %s failed: %s", url, e)
            return None

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("Closed image fetch session")
        self._session = None
