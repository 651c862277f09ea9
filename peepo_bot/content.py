"""
Image content source.

Scrapes an HTML gallery page for <img> tags and serves a random one.
The image list is cached for a while so scheduled deliveries to many
chats do not refetch the gallery for every chat.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from .errors import ContentNotFoundError
from .models import ContentItem

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
CACHE_TTL_SECONDS = 600.0
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp")


class ContentSource(ABC):
    """Anything that can hand out one image at a time."""

    @abstractmethod
    async def fetch(self) -> ContentItem:
        """
        Raises:
            ContentNotFoundError: If no image is available
        """

    async def close(self) -> None:
        pass


def extract_images(html: str, base_url: str) -> list[ContentItem]:
    """
    Collect image links from a gallery page.

    Relative src attributes are resolved against base_url; images without
    a known image extension (icons served by scripts, tracking pixels) are
    skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    items: list[ContentItem] = []
    seen: set[str] = set()

    for img in soup.find_all("img", src=True):
        src = img["src"].strip()
        if not src or src.startswith("data:"):
            continue

        url = urljoin(base_url, src)
        path = url.split("?", 1)[0].lower()
        if not path.endswith(IMAGE_EXTENSIONS):
            continue
        if url in seen:
            continue

        seen.add(url)
        title = (img.get("alt") or img.get("title") or "").strip() or None
        items.append(ContentItem(image_url=url, title=title))

    return items


class GalleryImageSource(ContentSource):
    """
    Random image from a gallery page.

    Args:
        gallery_url: Page whose <img> tags form the image pool
        cache_ttl: Seconds to reuse a fetched image list
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        gallery_url: str,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gallery_url = gallery_url
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None
        self._cached: list[ContentItem] = []
        self._cached_at: Optional[float] = None
        # One gallery request at a time; waiters reuse its result
        self._reload_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=REQUEST_TIMEOUT,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _cache_valid(self) -> bool:
        if not self._cached or self._cached_at is None:
            return False
        return self._clock() - self._cached_at < self.cache_ttl

    async def _load_images(self) -> list[ContentItem]:
        if self._cache_valid():
            return self._cached

        async with self._reload_lock:
            if self._cache_valid():
                return self._cached
            return await self._reload()

    async def _reload(self) -> list[ContentItem]:
        client = await self._get_client()
        try:
            response = await client.get(self.gallery_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ContentNotFoundError(f"Failed to fetch gallery page: {e}") from e

        images = extract_images(response.text, str(response.url))
        if not images:
            raise ContentNotFoundError(f"No images found on {self.gallery_url}")

        logger.info(f"Loaded {len(images)} images from gallery")
        self._cached = images
        self._cached_at = self._clock()
        return images

    async def fetch(self) -> ContentItem:
        images = await self._load_images()
        return random.choice(images)
