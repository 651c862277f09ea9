"""
Unit tests for content module.

Tests gallery scraping, caching and error wrapping.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from peepo_bot.content import GalleryImageSource, extract_images
from peepo_bot.errors import ContentNotFoundError
from tests.fakes import FakeClock

GALLERY_HTML = """
<html><body>
  <img src="/static/logo.svg" alt="logo">
  <img src="/img/peepo-happy.png" alt="Happy peepo">
  <img src="https://cdn.example.com/peepo-sad.gif?size=2" title="Sad peepo">
  <img src="/img/peepo-happy.png" alt="duplicate">
  <img src="data:image/png;base64,AAAA">
  <img src="/img/peepo-plain.jpg">
  <img alt="no src">
</body></html>
"""


def mock_http_client(text=GALLERY_HTML, url="https://gallery.example/peepos", error=None):
    mock_response = MagicMock()
    mock_response.text = text
    mock_response.url = url
    mock_response.raise_for_status = MagicMock()

    mock_instance = AsyncMock()
    if error is not None:
        mock_instance.get.side_effect = error
    else:
        mock_instance.get.return_value = mock_response
    return mock_instance


class TestExtractImages:
    """Tests for extract_images function."""

    def test_extracts_image_links(self):
        items = extract_images(GALLERY_HTML, "https://gallery.example/peepos")
        assert [item.image_url for item in items] == [
            "https://gallery.example/img/peepo-happy.png",
            "https://cdn.example.com/peepo-sad.gif?size=2",
            "https://gallery.example/img/peepo-plain.jpg",
        ]

    def test_titles_from_alt_or_title(self):
        items = extract_images(GALLERY_HTML, "https://gallery.example/peepos")
        assert [item.title for item in items] == ["Happy peepo", "Sad peepo", None]

    def test_empty_page(self):
        assert extract_images("<html></html>", "https://gallery.example/") == []


class TestGalleryImageSource:
    """Tests for GalleryImageSource class."""

    @pytest.mark.asyncio
    async def test_fetch_returns_gallery_image(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value = mock_http_client()
            source = GalleryImageSource("https://gallery.example/peepos")

            item = await source.fetch()

            assert item.image_url.startswith("https://")
            assert "peepo" in item.image_url

    @pytest.mark.asyncio
    async def test_image_list_is_cached(self):
        clock = FakeClock()
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = mock_http_client()
            mock_client.return_value = mock_instance
            source = GalleryImageSource("https://gallery.example/peepos", cache_ttl=60, clock=clock)

            await source.fetch()
            await source.fetch()
            assert mock_instance.get.call_count == 1

            clock.advance(61)
            await source.fetch()
            assert mock_instance.get.call_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_request(self):
        """Test that a cold cache is filled by a single gallery request."""
        mock_instance = mock_http_client()
        response = mock_instance.get.return_value

        async def slow_get(url):
            await asyncio.sleep(0.01)
            return response

        mock_instance.get.side_effect = slow_get
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value = mock_instance
            source = GalleryImageSource("https://gallery.example/peepos")

            items = await asyncio.gather(*(source.fetch() for _ in range(20)))

            assert len(items) == 20
            assert mock_instance.get.await_count == 1

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value = mock_http_client(error=httpx.ConnectError("refused"))
            source = GalleryImageSource("https://gallery.example/peepos")

            with pytest.raises(ContentNotFoundError, match="Failed to fetch gallery"):
                await source.fetch()

    @pytest.mark.asyncio
    async def test_page_without_images(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value = mock_http_client(text="<html><p>nothing</p></html>")
            source = GalleryImageSource("https://gallery.example/peepos")

            with pytest.raises(ContentNotFoundError, match="No images"):
                await source.fetch()

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = mock_http_client()
            mock_client.return_value = mock_instance
            source = GalleryImageSource("https://gallery.example/peepos")

            await source.fetch()
            await source.close()

            mock_instance.aclose.assert_awaited_once()
