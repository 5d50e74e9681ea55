# tests/conftest.py
"""
Pytest configuration and fixtures.

Every test gets its own SQLite database file, so store, queue and worker see
the same rows, including from the executor threads that run store calls.
"""

import os
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-api-key")

from curator import models  # noqa: E402
from curator.database import Base  # noqa: E402
from curator.services.deduper import Deduper  # noqa: E402
from curator.services.job_queue import JobQueue, RetryPolicy  # noqa: E402
from curator.services.store import ArticleStore  # noqa: E402
from curator.utils.clock import utcnow  # noqa: E402


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: tests that exercise several components together")


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return ArticleStore(session_factory)


@pytest.fixture
def deduper(session_factory):
    return Deduper(session_factory)


@pytest.fixture
def queue(session_factory):
    return JobQueue(session_factory)


@pytest.fixture
def fast_queue(session_factory):
    """Queue whose retries are due immediately."""
    return JobQueue(session_factory, retry_policy=RetryPolicy(max_attempts=3, backoff_base_seconds=0))


@pytest.fixture
def make_source(session_factory):
    """Factory for persisted sources."""

    def _make_source(
        name: str = "Example News",
        url: str | None = None,
        feed_url: str | None = "https://example.com/feed.xml",
        scrape_enabled: bool = False,
        is_active: bool = True,
        fetch_frequency_minutes: int = 60,
        last_fetched_minutes_ago: float | None = None,
    ) -> models.Source:
        source = models.Source(
            id=uuid.uuid4(),
            name=name,
            url=url or f"https://{uuid.uuid4().hex[:8]}.example.com",
            feed_url=feed_url,
            scrape_enabled=scrape_enabled,
            is_active=is_active,
            fetch_frequency_minutes=fetch_frequency_minutes,
            last_fetched_at=(
                utcnow() - timedelta(minutes=last_fetched_minutes_ago)
                if last_fetched_minutes_ago is not None
                else None
            ),
        )
        with session_factory() as db:
            db.add(source)
            db.commit()
        return source

    return _make_source


@pytest.fixture
def source(make_source):
    return make_source()


RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example Feed</title>
    <link>https://example.com</link>
    <description>Example news</description>
    {items}
  </channel>
</rss>
"""


def _rss_item(item: dict) -> str:
    parts = []
    if item.get("title") is not None:
        parts.append(f"<title>{item['title']}</title>")
    if item.get("link") is not None:
        parts.append(f"<link>{item['link']}</link>")
    if item.get("description") is not None:
        parts.append(f"<description><![CDATA[{item['description']}]]></description>")
    if item.get("content_encoded") is not None:
        parts.append(f"<content:encoded><![CDATA[{item['content_encoded']}]]></content:encoded>")
    if item.get("pub_date") is not None:
        parts.append(f"<pubDate>{item['pub_date']}</pubDate>")
    if item.get("author") is not None:
        parts.append(f"<author>{item['author']}</author>")
    if item.get("media_content") is not None:
        parts.append(f'<media:content url="{item["media_content"]}" medium="image" />')
    if item.get("media_thumbnail") is not None:
        parts.append(f'<media:thumbnail url="{item["media_thumbnail"]}" />')
    if item.get("enclosure") is not None:
        url, mime = item["enclosure"]
        parts.append(f'<enclosure url="{url}" type="{mime}" length="1000" />')
    return "<item>" + "".join(parts) + "</item>"


@pytest.fixture
def build_rss():
    """Render a list of item dicts as an RSS 2.0 document (bytes)."""

    def _build_rss(items: list[dict]) -> bytes:
        return RSS_TEMPLATE.format(items="\n".join(_rss_item(item) for item in items)).encode("utf-8")

    return _build_rss
