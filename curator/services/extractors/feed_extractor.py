# curator/services/extractors/feed_extractor.py
"""
Syndicated feed (RSS/Atom) extractor.

Fetches a feed with a bounded timeout and turns each usable entry into an
ArticleDraft. Entries without a link or title are excluded; a single malformed
entry is logged and skipped, never fatal to the feed.

Field preference (first non-empty wins):
- body:  content_encoded -> content -> description -> summary
- image: media_content -> media_thumbnail -> image enclosure -> first <img> in markup
"""

import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import feedparser
import httpx

from curator.services.classifier import CategoryClassifier
from curator.services.deduper import strip_markup
from curator.services.extractors.base import ArticleDraft, BaseExtractor, ExtractionError
from curator.utils.clock import utcnow

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.svg')
_IMG_SRC_RE = re.compile(r'<img[^>]+src=["\']([^"\'>]+)["\']', re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str | None) -> str:
    """Collapse whitespace and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_html(markup: str | None) -> str:
    """Strip script/style/tags and entities, then collapse whitespace."""
    return clean_text(strip_markup(markup))


def is_image_url(url: str) -> bool:
    """Check if URL is likely an image."""
    lower_url = url.lower()
    return any(ext in lower_url for ext in IMAGE_EXTENSIONS)


@dataclass
class FeedItem:
    """
    One feed entry with every field the extractor may consult, named explicitly.

    The field order of BODY_FIELDS / the image resolution below is the
    preference order.
    """

    link: str | None = None
    title: str | None = None
    author: str | None = None
    published: datetime | None = None
    content_encoded: str | None = None
    content: str | None = None
    description: str | None = None
    summary: str | None = None
    media_content_url: str | None = None
    media_thumbnail_url: str | None = None
    enclosure_url: str | None = None
    enclosure_type: str | None = None

    BODY_FIELDS = ("content_encoded", "content", "description", "summary")

    @classmethod
    def from_entry(cls, entry: Any) -> "FeedItem":
        """Map a feedparser entry onto the named fields."""
        content_encoded = None
        content = None
        for block in entry.get("content") or []:
            value = block.get("value")
            if not value:
                continue
            if block.get("type") in ("text/html", "application/xhtml+xml") and content_encoded is None:
                content_encoded = value
            elif content is None:
                content = value

        enclosure_url = None
        enclosure_type = None
        for enclosure in entry.get("enclosures") or []:
            href = enclosure.get("href") or enclosure.get("url")
            if href:
                enclosure_url = href
                enclosure_type = enclosure.get("type")
                break

        return cls(
            link=clean_text(entry.get("link")) or None,
            title=entry.get("title"),
            author=entry.get("author"),
            published=_parse_published(entry),
            content_encoded=content_encoded,
            content=content,
            description=entry.get("description"),
            summary=entry.get("summary"),
            media_content_url=_first_media_url(entry.get("media_content")),
            media_thumbnail_url=_first_media_url(entry.get("media_thumbnail")),
            enclosure_url=enclosure_url,
            enclosure_type=enclosure_type,
        )

    def best_body_markup(self) -> str:
        for name in self.BODY_FIELDS:
            value = getattr(self, name)
            if value and value.strip():
                return value
        return ""

    def resolve_image_url(self) -> str | None:
        if self.media_content_url:
            return self.media_content_url
        if self.media_thumbnail_url:
            return self.media_thumbnail_url
        if self.enclosure_url and (
            (self.enclosure_type or "").startswith("image/") or is_image_url(self.enclosure_url)
        ):
            return self.enclosure_url
        for name in self.BODY_FIELDS:
            value = getattr(self, name)
            if value:
                match = _IMG_SRC_RE.search(value)
                if match:
                    return html.unescape(match.group(1))
        return None


def _first_media_url(media: list[dict] | None) -> str | None:
    for item in media or []:
        url = item.get("url")
        if url:
            return url
    return None


def _parse_published(entry: Any) -> datetime | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6])
            except (TypeError, ValueError):
                continue
    return None


class FeedExtractor(BaseExtractor):
    """Fetch and parse RSS/Atom feeds into drafts."""

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = "NewsCuratorBot/1.0",
        classifier: CategoryClassifier | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.classifier = classifier or CategoryClassifier()
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={
                "User-Agent": user_agent,
                "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
            },
        )

    async def extract(self, url: str) -> list[ArticleDraft]:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExtractionError(url, f"Failed to fetch feed: {e}") from e

        return self.parse(response.content, url)

    def parse(self, content: bytes | str, url: str = "") -> list[ArticleDraft]:
        """
        Parse feed content into drafts.

        Raises:
            ExtractionError: If the document is not a usable feed
        """
        feed = feedparser.parse(content)
        if feed.bozo and not feed.entries:
            raise ExtractionError(url, f"Failed to parse feed: {feed.get('bozo_exception')}")

        drafts = []
        for index, entry in enumerate(feed.entries):
            try:
                draft = self._entry_to_draft(entry)
            except Exception as e:
                logger.warning(f"Skipping malformed entry {index} in {url}: {e}")
                continue
            if draft is not None:
                drafts.append(draft)

        logger.debug(f"Parsed {len(drafts)}/{len(feed.entries)} usable entries from {url}")
        return drafts

    def _entry_to_draft(self, entry: Any) -> ArticleDraft | None:
        item = FeedItem.from_entry(entry)
        title = clean_html(item.title)
        if not item.link or not title:
            return None

        body = clean_html(item.best_body_markup())
        return ArticleDraft(
            title=title,
            body=body,
            url=item.link,
            published_at=item.published or utcnow(),
            author=clean_text(item.author) or None,
            image_url=item.resolve_image_url(),
            category=self.classifier.classify(title, body),
        )

    async def close(self) -> None:
        await self.client.aclose()
