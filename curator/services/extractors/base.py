# curator/services/extractors/base.py
"""
Base classes and types for article extractors.

Defines the abstract BaseExtractor interface and the ArticleDraft that every
extractor produces. Drafts live only in worker memory until they are either
persisted as an Article or discarded as a duplicate.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from curator.models import ArticleCategory
from curator.utils.clock import utcnow


class ExtractionError(Exception):
    """Raised when a feed or page cannot be fetched or parsed."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{message} ({url})")


@dataclass
class ArticleDraft:
    """Normalized extractor output, before dedup/persistence decisions."""

    title: str
    body: str
    url: str
    published_at: datetime = field(default_factory=utcnow)
    author: str | None = None
    image_url: str | None = None
    category: ArticleCategory = ArticleCategory.OTHER


class BaseExtractor(ABC):
    """
    Abstract base class for extractors.

    One extractor type serves one job kind.
    """

    @abstractmethod
    async def extract(self, url: str) -> list[ArticleDraft]:
        """
        Fetch the URL and return normalized drafts.

        Raises:
            ExtractionError: If the target is unreachable or unparseable
        """

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (close HTTP client, etc.)."""
