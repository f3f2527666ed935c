"""
Tests for the source fetcher.

Tests cover:
- URL helpers
- Telegram preview parsing: message lines, cursors, end of history
- SourceFetcher over a mocked transport: proxies, failures, media downloads
"""

import httpx
import pytest

from intel_archive.exceptions import FetchFailure
from intel_archive.models import SourceType
from intel_archive.services.fetcher import (
    SourceFetcher,
    parse_channel_posts,
    parse_telegram_page,
    source_name_from_url,
    telegram_preview_url,
)


CHANNEL_HTML = """
<html><body>
<div class="tgme_widget_message" data-post="example_channel/120">
  <div class="tgme_widget_message_photo_wrap" style="width:100%;background-image:url('https://cdn.example/120.jpg')"></div>
  <div class="tgme_widget_message_text">Crowds gather at
     Azadi Square</div>
  <time datetime="2026-01-10T18:00:00+00:00"></time>
</div>
<div class="tgme_widget_message" data-post="example_channel/118">
  <div class="tgme_widget_message_text">Strike at the bazaar</div>
  <time datetime="2026-01-09T09:30:00+00:00"></time>
</div>
<div class="tgme_widget_message" data-post="example_channel/119">
  <div class="tgme_widget_message_photo_wrap" style="background-image:url(https://cdn.example/119.jpg)"></div>
</div>
</body></html>
"""

EMPTY_CHANNEL_HTML = "<html><body><div class='tgme_channel_info'>No posts yet in this channel</div></body></html>"

ARTICLE_HTML = """
<html><head><title>Report</title><meta property="og:image" content="https://cdn.example/cover.jpg"></head>
<body><article><h1>Protests spread</h1>
<p>Thousands of people marched through the centre of Isfahan on Saturday evening, witnesses said.</p>
<p>Security forces were deployed near the main square as the crowd grew through the night.</p>
</article></body></html>
"""


def _fetcher(handler, proxies=None) -> SourceFetcher:
    return SourceFetcher(proxies=proxies, transport=httpx.MockTransport(handler), retry_pause=0)


class TestUrlHelpers:
    """Tests for URL helper functions."""

    def test_source_name(self):
        assert source_name_from_url("https://t.me/example_channel") == "example_channel"
        assert source_name_from_url("https://t.me/s/example_channel/?embed=1") == "example_channel"
        assert source_name_from_url("") == "IntelSource"

    def test_preview_url(self):
        """Test the public preview URL and the before= cursor."""
        assert telegram_preview_url("https://t.me/example_channel") == "https://t.me/s/example_channel"
        assert (
            telegram_preview_url("https://t.me/example_channel", "example_channel/118")
            == "https://t.me/s/example_channel?before=118"
        )
        assert telegram_preview_url("https://t.me/s/example_channel") == "https://t.me/s/example_channel"


class TestParseTelegramPage:
    """Tests for parse_telegram_page function."""

    def test_text_messages_become_lines(self):
        """Test one flattened line per text message under the source header."""
        page = parse_telegram_page(CHANNEL_HTML, "https://t.me/example_channel")

        lines = page.raw_content.splitlines()
        assert lines[0] == "SOURCE: https://t.me/example_channel"
        assert "ID: 120 | DATE: 2026-01-10T18:00:00+00:00 | MSG: Crowds gather at Azadi Square" in lines
        assert "ID: 118 | DATE: 2026-01-09T09:30:00+00:00 | MSG: Strike at the bazaar" in lines
        assert page.message_count == 2
        assert page.source_type == SourceType.TELEGRAM

    def test_cursor_points_at_oldest_text_message(self):
        """Test the next cursor is the smallest message id seen."""
        page = parse_telegram_page(CHANNEL_HTML, "https://t.me/example_channel")

        assert page.next_cursor == "example_channel/118"
        assert page.oldest_post_date == "2026-01-09T09:30:00+00:00"

    def test_no_messages_is_end_of_history(self):
        """Test an empty page has no cursor and zero messages."""
        page = parse_telegram_page(EMPTY_CHANNEL_HTML, "https://t.me/example_channel")

        assert page.message_count == 0
        assert page.next_cursor is None


class TestParseChannelPosts:
    """Tests for parse_channel_posts function."""

    def test_photo_urls(self):
        """Test photo URLs are read from the background-image style."""
        posts = {post.id: post for post in parse_channel_posts(CHANNEL_HTML)}

        assert posts["120"].media_url == "https://cdn.example/120.jpg"
        assert posts["120"].url == "https://t.me/example_channel/120"
        assert posts["118"].media_url is None
        assert posts["119"].media_url == "https://cdn.example/119.jpg"
        assert posts["119"].text == ""

    def test_video_urls(self):
        """Test a clip's source is used when the post has no photo."""
        html = """
        <div class="tgme_widget_message" data-post="example_channel/130">
          <div class="tgme_widget_message_video_player">
            <video class="tgme_widget_message_video js-message_video" src="https://cdn.example/130.mp4"></video>
          </div>
          <div class="tgme_widget_message_text">March on Enghelab</div>
        </div>
        """

        (post,) = parse_channel_posts(html)

        assert post.media_url == "https://cdn.example/130.mp4"
        assert post.text == "March on Enghelab"


class TestSourceFetcher:
    """Tests for SourceFetcher over httpx.MockTransport."""

    async def test_fetch_telegram_page_with_cursor(self):
        """Test the preview URL and before= parameter are requested."""
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, text=CHANNEL_HTML)

        page = await _fetcher(handler).fetch_page("https://t.me/example_channel", "example_channel/130")

        assert requested == ["https://t.me/s/example_channel?before=130"]
        assert page.message_count == 2

    async def test_fetch_web_page(self):
        """Test a web page is reduced to its text."""
        page = await _fetcher(lambda request: httpx.Response(200, text=ARTICLE_HTML)).fetch_page(
            "https://news.example/report"
        )

        assert page.source_type == SourceType.WEB
        assert page.next_cursor is None
        assert page.message_count == 1
        assert page.raw_content.startswith("SOURCE: https://news.example/report")
        assert "Isfahan" in page.raw_content

    async def test_falls_back_to_proxy(self):
        """Test proxies are tried in order after the direct request fails."""
        requested = []

        def handler(request):
            requested.append(request.url.host)
            if request.url.host == "proxy.example":
                return httpx.Response(200, text=CHANNEL_HTML)
            return httpx.Response(403, text="Forbidden")

        fetcher = _fetcher(handler, proxies=["https://proxy.example/get?url={url}"])
        page = await fetcher.fetch_page("https://t.me/example_channel")

        assert requested == ["t.me", "proxy.example"]
        assert page.message_count == 2

    async def test_proxy_receives_encoded_url(self):
        """Test the target URL is fully percent-encoded in the proxy template."""
        requested = []

        def handler(request):
            requested.append(request)
            if request.url.host == "proxy.example":
                return httpx.Response(200, text=CHANNEL_HTML)
            raise httpx.ConnectError("refused")

        await _fetcher(handler, proxies=["https://proxy.example/get?url={url}"]).fetch_html("https://t.me/s/a?before=5")

        assert requested[-1].url.params["url"] == "https://t.me/s/a?before=5"

    async def test_all_attempts_fail(self):
        """Test FetchFailure carries the last error."""

        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(FetchFailure, match="connection refused"):
            await _fetcher(handler, proxies=["https://proxy.example/{url}"]).fetch_page("https://t.me/example_channel")

    async def test_bot_protection_is_a_failure(self):
        """Test challenge pages are rejected."""
        html = "<html><body><form id='challenge-form'>Checking your browser before accessing</form></body></html>"

        with pytest.raises(FetchFailure, match="Bot protected"):
            await _fetcher(lambda request: httpx.Response(200, text=html)).fetch_html("https://news.example")

    async def test_short_content_is_a_failure(self):
        with pytest.raises(FetchFailure, match="Content too short"):
            await _fetcher(lambda request: httpx.Response(200, text="ok")).fetch_html("https://news.example")

    async def test_fetch_channel_posts(self):
        posts = await _fetcher(lambda request: httpx.Response(200, text=CHANNEL_HTML)).fetch_channel_posts(
            "https://t.me/example_channel"
        )
        assert [post.id for post in posts] == ["120", "118", "119"]

    async def test_extract_media_url(self):
        """Test og:image is preferred."""
        fetcher = _fetcher(lambda request: httpx.Response(200, text=ARTICLE_HTML))
        assert await fetcher.extract_media_url("https://news.example/report") == "https://cdn.example/cover.jpg"


class TestDownloadMedia:
    """Tests for SourceFetcher.download_media."""

    async def test_download(self):
        """Test bytes and MIME type are returned."""
        fetcher = _fetcher(
            lambda request: httpx.Response(200, content=b"\xff\xd8jpeg", headers={"content-type": "image/jpeg; q=1"})
        )

        assert await fetcher.download_media("https://cdn.example/1.jpg") == (b"\xff\xd8jpeg", "image/jpeg")

    async def test_oversized_media_is_skipped(self, monkeypatch):
        """Test files above the size limit return None."""
        monkeypatch.setattr("intel_archive.services.fetcher.MAX_MEDIA_BYTES", 4)
        fetcher = _fetcher(lambda request: httpx.Response(200, content=b"12345678", headers={"content-type": "image/jpeg"}))

        assert await fetcher.download_media("https://cdn.example/big.jpg") is None

    async def test_http_error(self):
        fetcher = _fetcher(lambda request: httpx.Response(404))

        with pytest.raises(FetchFailure):
            await fetcher.download_media("https://cdn.example/missing.jpg")
