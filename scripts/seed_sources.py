#!/usr/bin/env python3
"""
Seed script to register a starter set of news sources.

Usage:
    python scripts/seed_sources.py
    python scripts/seed_sources.py --create-tables
"""

import argparse
import os
import sys
import uuid

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import select
from sqlalchemy.orm import Session

from curator import models
from curator.config import get_settings
from curator.database import create_session_factory, init_db


SOURCES = [
    {
        "name": "NPR News",
        "url": "https://www.npr.org",
        "feed_url": "https://feeds.npr.org/1001/rss.xml",
        "fetch_frequency_minutes": 30,
    },
    {
        "name": "BBC World",
        "url": "https://www.bbc.com/news/world",
        "feed_url": "http://feeds.bbci.co.uk/news/world/rss.xml",
        "fetch_frequency_minutes": 30,
    },
    {
        "name": "BBC Technology",
        "url": "https://www.bbc.com/news/technology",
        "feed_url": "http://feeds.bbci.co.uk/news/technology/rss.xml",
    },
    {
        "name": "The Guardian - Science",
        "url": "https://www.theguardian.com/science",
        "feed_url": "https://www.theguardian.com/science/rss",
    },
    {
        "name": "Ars Technica",
        "url": "https://arstechnica.com",
        "feed_url": "https://feeds.arstechnica.com/arstechnica/index",
        "fetch_frequency_minutes": 120,
    },
]


def seed_sources(db: Session) -> int:
    """Insert any SOURCES not already registered (matched by url). Returns count added."""
    print("Seeding sources...")
    added = 0

    for source_data in SOURCES:
        existing = db.execute(
            select(models.Source).where(models.Source.url == source_data["url"])
        ).scalar_one_or_none()

        if existing:
            print(f"  Source '{source_data['name']}' already exists, skipping.")
            continue

        db.add(
            models.Source(
                id=uuid.uuid4(),
                name=source_data["name"],
                url=source_data["url"],
                feed_url=source_data.get("feed_url"),
                scrape_enabled=source_data.get("scrape_enabled", False),
                is_active=True,
                fetch_frequency_minutes=source_data.get("fetch_frequency_minutes", 60),
            )
        )
        added += 1
        print(f"  Added source: {source_data['name']}")

    db.commit()
    print(f"Done! {added} new sources, {len(SOURCES)} configured.")
    return added


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed news sources")
    parser.add_argument("--create-tables", action="store_true", help="Create tables first (local dev only)")
    args = parser.parse_args()

    session_factory = create_session_factory(get_settings().DATABASE_URL)
    if args.create_tables:
        init_db(session_factory.kw["bind"])

    with session_factory() as db:
        seed_sources(db)
