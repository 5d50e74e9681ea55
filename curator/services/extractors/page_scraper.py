# curator/services/extractors/page_scraper.py
"""
Single-page article scraper.

Downloads the page once with a bounded timeout and hands the HTML to
trafilatura for body and metadata extraction. A scrape job always yields
exactly one draft or raises ExtractionError.
"""

import logging
from datetime import datetime

import httpx
import trafilatura

from curator.services.classifier import CategoryClassifier
from curator.services.extractors.base import ArticleDraft, BaseExtractor, ExtractionError
from curator.services.extractors.feed_extractor import clean_text
from curator.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


class PageScraper(BaseExtractor):
    """Extract one article from an HTML page."""

    DEFAULT_TIMEOUT = 15.0

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
            max_redirects=5,
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            },
        )

    async def extract(self, url: str) -> list[ArticleDraft]:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExtractionError(url, f"Failed to fetch page: {e}") from e

        return [self.parse(response.text, url)]

    def parse(self, page_html: str, url: str) -> ArticleDraft:
        """
        Extract a draft from downloaded HTML.

        Raises:
            ExtractionError: If no title or body can be extracted
        """
        body = trafilatura.extract(
            page_html,
            url=url,
            include_comments=False,
            include_tables=False,
        )
        metadata = trafilatura.extract_metadata(page_html, default_url=url)

        title = clean_text(getattr(metadata, "title", None))
        body = (body or "").strip()
        if not title or not body:
            raise ExtractionError(url, "Failed to extract title or content from article")

        return ArticleDraft(
            title=title,
            body=body,
            url=url,
            published_at=_parse_date(getattr(metadata, "date", None)),
            author=clean_text(getattr(metadata, "author", None)) or None,
            image_url=getattr(metadata, "image", None) or None,
            category=self.classifier.classify(title, body),
        )

    async def close(self) -> None:
        await self.client.aclose()


def _parse_date(value: str | None) -> datetime:
    """Parse trafilatura's ISO date string, falling back to now."""
    if not value:
        return utcnow()
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        logger.debug(f"Unparseable published date {value!r}, using current time")
        return utcnow()
