"""
Article extractors for the ingestion worker.

Available extractors:
- FeedExtractor: RSS/Atom feeds (zero or more drafts per job)
- PageScraper: single article page (exactly one draft per job)
"""

from curator.services.extractors.base import ArticleDraft, BaseExtractor, ExtractionError
from curator.services.extractors.feed_extractor import FeedExtractor
from curator.services.extractors.page_scraper import PageScraper

__all__ = [
    "ArticleDraft",
    "BaseExtractor",
    "ExtractionError",
    "FeedExtractor",
    "PageScraper",
]
