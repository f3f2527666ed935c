"""
Source Fetcher

Fetches one page of a monitored source and flattens it into text for the
extraction model.

Telegram channels are read through their public preview (t.me/s/<name>),
paginated backwards with ?before=<message id>. Any other URL is reduced to
its article text with trafilatura.
"""

import asyncio
import re
from urllib.parse import quote

import httpx
import trafilatura
from bs4 import BeautifulSoup
from loguru import logger

from intel_archive.exceptions import FetchFailure
from intel_archive.models import ChannelPost, SourcePage, SourceType


MIN_CONTENT_CHARS = 50
WEB_CONTENT_CHARS = 15000
MAX_MEDIA_BYTES = 20 * 1024 * 1024
BOT_PROTECTION_MARKERS = ("challenge-form", "Cloudflare")

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36"

_BACKGROUND_URL = re.compile(r"url\(['\"]?(.*?)['\"]?\)")


# =============================================================================
# URL HELPERS
# =============================================================================


def is_telegram_url(url: str) -> bool:
    return "t.me/" in url


def source_name_from_url(url: str) -> str:
    """Last path segment without query string (channel name for Telegram)."""
    parts = [part for part in url.split("?", 1)[0].split("/") if part]
    return parts[-1] if parts else "IntelSource"


def telegram_preview_url(url: str, cursor: str | None = None) -> str:
    """Public preview URL of a channel, positioned before the cursor message."""
    target = url if "/s/" in url else url.replace("t.me/", "t.me/s/", 1)
    if cursor:
        message_id = cursor.split("/")[-1]
        separator = "&" if "?" in target else "?"
        target = f"{target}{separator}before={message_id}"
    return target


# =============================================================================
# HTML PARSING
# =============================================================================


def _flatten(text: str) -> str:
    return " ".join(text.split())


def parse_telegram_page(html: str, source_url: str) -> SourcePage:
    """
    Flatten a channel preview page into one line per text message.

    The next cursor points at the oldest message seen; a page without text
    messages has message_count 0 (end of history).
    """
    soup = BeautifulSoup(html, "html.parser")
    source_name = source_name_from_url(source_url)

    lines = [f"SOURCE: {source_url}", ""]
    min_id: int | None = None
    oldest_date: str | None = None

    for node in soup.select(".tgme_widget_message"):
        text_el = node.select_one(".tgme_widget_message_text")
        content = _flatten(text_el.get_text(" ")) if text_el else ""
        if not content:
            continue

        time_el = node.select_one("time[datetime]")
        post_date = time_el["datetime"] if time_el else None
        post_id = (node.get("data-post") or "").split("/")[-1]

        lines.append(f"ID: {post_id} | DATE: {post_date} | MSG: {content}")

        if post_id.isdigit() and (min_id is None or int(post_id) < min_id):
            min_id = int(post_id)
            oldest_date = post_date

    return SourcePage(
        raw_content="\n".join(lines) + "\n",
        next_cursor=f"{source_name}/{min_id}" if min_id is not None else None,
        source_name=source_name,
        message_count=len(lines) - 2,
        source_type=SourceType.TELEGRAM,
        oldest_post_date=oldest_date,
    )


def web_page_text(html: str) -> str:
    """Main article text, falling back to all visible page text."""
    content = trafilatura.extract(
        html,
        include_comments=False,
        include_tables=True,
        favor_precision=True,
    )
    if not content:
        content = _flatten(BeautifulSoup(html, "html.parser").get_text(" "))
    return content


def parse_web_page(html: str, source_url: str) -> SourcePage:
    text = web_page_text(html)[:WEB_CONTENT_CHARS]
    return SourcePage(
        raw_content=f"SOURCE: {source_url}\n\n{text}",
        next_cursor=None,
        source_name=source_name_from_url(source_url),
        message_count=1,
        source_type=SourceType.WEB,
    )


def parse_channel_posts(html: str) -> list[ChannelPost]:
    """Posts of a channel preview page, with the photo or video URL when one is attached."""
    soup = BeautifulSoup(html, "html.parser")
    posts = []
    for node in soup.select(".tgme_widget_message"):
        data_post = node.get("data-post")
        if not data_post:
            continue

        text_el = node.select_one(".tgme_widget_message_text")
        media_url = None
        photo = node.select_one(".tgme_widget_message_photo_wrap")
        if photo is not None:
            match = _BACKGROUND_URL.search(photo.get("style", ""))
            media_url = match.group(1) if match else None
        if media_url is None:
            video = node.select_one("video[src]")
            media_url = video["src"] if video is not None else None

        posts.append(
            ChannelPost(
                id=data_post.split("/")[-1],
                text=_flatten(text_el.get_text(" ")) if text_el else "",
                url=f"https://t.me/{data_post}",
                media_url=media_url,
            )
        )
    return posts


# =============================================================================
# FETCHER
# =============================================================================


class SourceFetcher:
    """HTTP side of ingestion: pages, channel posts and media."""

    def __init__(
        self,
        proxies: list[str] | None = None,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_pause: float = 0.3,
    ):
        self.proxies = proxies or []
        self.timeout = timeout
        self.transport = transport
        self.retry_pause = retry_pause

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self.transport,
        )

    def _attempt_urls(self, target_url: str) -> list[str]:
        encoded = quote(target_url, safe="")
        return [target_url] + [template.format(url=encoded) for template in self.proxies]

    async def fetch_html(self, target_url: str) -> str:
        """
        GET a page directly, then through each configured proxy.

        Raises:
            FetchFailure: Every attempt failed; carries the last error
        """
        last_error: Exception | None = None

        async with self._client() as client:
            for attempt_url in self._attempt_urls(target_url):
                try:
                    response = await client.get(attempt_url)
                    response.raise_for_status()
                    content = response.text
                    if len(content) < MIN_CONTENT_CHARS:
                        raise ValueError("Content too short")
                    if any(marker in content for marker in BOT_PROTECTION_MARKERS):
                        raise ValueError("Bot protected")
                    return content
                except (httpx.HTTPError, ValueError) as e:
                    last_error = e
                    logger.debug(f"[FETCH] Attempt failed for {attempt_url}: {e}")
                    if self.retry_pause:
                        await asyncio.sleep(self.retry_pause)

        logger.error(f"[FETCH] Network failure for {target_url}: {last_error}")
        raise FetchFailure(f"Network failure: {last_error}")

    async def fetch_page(self, source_url: str, cursor: str | None = None) -> SourcePage:
        """
        Fetch one page of a source.

        Args:
            source_url: Channel or web page URL
            cursor: "<name>/<message id>" to read messages older than that id

        Returns:
            SourcePage with the flattened text and the next cursor
        """
        url = source_url.strip()

        if is_telegram_url(url):
            html = await self.fetch_html(telegram_preview_url(url, cursor))
            page = parse_telegram_page(html, url)
        else:
            html = await self.fetch_html(url)
            page = parse_web_page(html, url)

        logger.info(f"[FETCH] {page.source_name}: {page.message_count} messages (cursor {cursor or 'latest'})")
        return page

    async def fetch_channel_posts(self, url: str) -> list[ChannelPost]:
        """Latest posts of a channel, for the crowd media scan."""
        html = await self.fetch_html(telegram_preview_url(url.strip()))
        posts = parse_channel_posts(html)
        logger.info(f"[FETCH] {len(posts)} posts from {url}")
        return posts

    async def extract_media_url(self, url: str) -> str | None:
        """og:image of a page, or its first <img>."""
        soup = BeautifulSoup(await self.fetch_html(url), "html.parser")
        og_image = soup.find("meta", property="og:image")
        if og_image and og_image.get("content"):
            return og_image["content"]
        img = soup.find("img", src=True)
        return img["src"] if img else None

    async def download_media(self, url: str) -> tuple[bytes, str] | None:
        """
        Download a media file.

        Returns:
            (bytes, MIME type), or None when the file exceeds the size limit

        Raises:
            FetchFailure: The download failed
        """
        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    declared = int(response.headers.get("content-length") or 0)
                    if declared > MAX_MEDIA_BYTES:
                        logger.warning(f"[FETCH] Skipping {url}: {declared} bytes")
                        return None

                    chunks = []
                    size = 0
                    async for chunk in response.aiter_bytes():
                        size += len(chunk)
                        if size > MAX_MEDIA_BYTES:
                            logger.warning(f"[FETCH] Skipping {url}: larger than {MAX_MEDIA_BYTES} bytes")
                            return None
                        chunks.append(chunk)

                    mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
                    return b"".join(chunks), mime_type
        except httpx.HTTPError as e:
            raise FetchFailure(f"Media download failed: {e}") from e
