# curator/services/deduper.py
"""
Deduplication service for detecting already-stored articles.

Dedupe rules:
1. Exact canonical URL match (covers feed re-publication with minor edits)
2. Content fingerprint match (covers syndication and mirrors under new URLs)

Both checks are authoritative short-circuits. The check-then-insert sequence
is not atomic; the unique constraint on articles.fingerprint is the final
authority and the store reports a violation as a skip.
"""

import hashlib
import html
import re
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from curator import models

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

FINGERPRINT_SEPARATOR = "|||"


@dataclass(frozen=True)
class DedupResult:
    """Outcome of a duplicate check."""

    is_duplicate: bool
    matched_on: str | None = None  # "url" or "fingerprint"
    existing_article_id: uuid.UUID | None = None


def strip_markup(text: str | None) -> str:
    """Remove script/style blocks and tags, then unescape HTML entities."""
    if not text:
        return ""
    text = _SCRIPT_STYLE_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    return html.unescape(text)


def normalize_text(text: str | None) -> str:
    """
    Normalize text for fingerprinting.

    Strips markup, lowercases, drops punctuation and collapses whitespace, so
    `<b>report</b>,` and `report,` normalize to the same text.
    """
    if not text:
        return ""
    text = strip_markup(text).lower()
    text = _PUNCTUATION_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def compute_fingerprint(title: str | None, body: str | None) -> str:
    """
    SHA-256 digest of normalized title and body.

    Inputs that differ only in markup, case or incidental whitespace produce
    the same fingerprint.
    """
    combined = f"{normalize_text(title)}{FINGERPRINT_SEPARATOR}{normalize_text(body)}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


class Deduper:
    """Duplicate check against the article store."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def is_duplicate(self, url: str, fingerprint: str) -> DedupResult:
        """
        Check whether an article with this URL or fingerprint already exists.

        URL is checked first because it is the cheaper, indexed lookup.
        """
        with self._session_factory() as db:
            return self.check(db, url, fingerprint)

    @staticmethod
    def check(db: Session, url: str, fingerprint: str) -> DedupResult:
        """Same as is_duplicate, inside a caller-owned session."""
        # Check 1: Exact URL match
        existing_id = db.execute(
            select(models.Article.id).where(models.Article.url == url).limit(1)
        ).scalar_one_or_none()
        if existing_id is not None:
            return DedupResult(True, "url", existing_id)

        # Check 2: Fingerprint match
        existing_id = db.execute(
            select(models.Article.id).where(models.Article.fingerprint == fingerprint).limit(1)
        ).scalar_one_or_none()
        if existing_id is not None:
            return DedupResult(True, "fingerprint", existing_id)

        return DedupResult(False)

    def find_duplicates_batch(self, candidates: list[tuple[str, str]]) -> dict[str, bool]:
        """
        Check many (url, fingerprint) pairs with one query per key type.

        Returns:
            Dict mapping each url to whether it is a duplicate
        """
        if not candidates:
            return {}

        urls = [url for url, _ in candidates]
        fingerprints = [fp for _, fp in candidates]

        with self._session_factory() as db:
            rows = db.execute(
                select(models.Article.url, models.Article.fingerprint).where(
                    (models.Article.url.in_(urls)) | (models.Article.fingerprint.in_(fingerprints))
                )
            ).all()

        existing_urls = {row.url for row in rows}
        existing_fingerprints = {row.fingerprint for row in rows}
        return {
            url: url in existing_urls or fp in existing_fingerprints
            for url, fp in candidates
        }
