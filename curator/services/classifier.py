# curator/services/classifier.py
"""
Category classification using simple keyword heuristics.

Each category has a fixed keyword table. The category whose keywords appear
most often in the title + body wins. No hits, or a tie for the top score,
falls back to OTHER.
"""

import re

from curator.models import ArticleCategory


# Keyword sets for each category (lowercase)
CATEGORY_KEYWORDS: dict[ArticleCategory, tuple[str, ...]] = {
    ArticleCategory.POLITICS: (
        'politics', 'election', 'government', 'congress', 'senate',
        'president', 'vote', 'policy', 'democrat', 'republican',
    ),
    ArticleCategory.TECHNOLOGY: (
        'technology', 'tech', 'software', 'ai', 'artificial intelligence',
        'computer', 'startup', 'silicon valley', 'app', 'digital',
    ),
    ArticleCategory.BUSINESS: (
        'business', 'economy', 'market', 'stock', 'finance',
        'investment', 'company', 'corporate', 'revenue', 'profit',
    ),
    ArticleCategory.SCIENCE: (
        'science', 'research', 'study', 'scientist', 'discovery',
        'experiment', 'laboratory', 'physics', 'chemistry', 'biology',
    ),
    ArticleCategory.HEALTH: (
        'health', 'medical', 'medicine', 'doctor', 'hospital',
        'disease', 'treatment', 'patient', 'vaccine', 'covid',
    ),
    ArticleCategory.ENTERTAINMENT: (
        'entertainment', 'movie', 'film', 'music', 'celebrity',
        'actor', 'actress', 'show', 'concert', 'album',
    ),
    ArticleCategory.SPORTS: (
        'sports', 'game', 'team', 'player', 'score',
        'championship', 'league', 'football', 'basketball', 'soccer',
    ),
    ArticleCategory.WORLD: (
        'world', 'international', 'global', 'foreign', 'country',
        'nation', 'war', 'conflict', 'diplomatic',
    ),
}

# Word boundary matching avoids partial matches (e.g., "ai" in "said")
_KEYWORD_PATTERNS: dict[ArticleCategory, list[re.Pattern]] = {
    category: [re.compile(r'\b' + re.escape(keyword) + r'\b') for keyword in keywords]
    for category, keywords in CATEGORY_KEYWORDS.items()
}


class CategoryClassifier:
    """Classify drafts into coarse categories using keyword hit counts."""

    def score(self, title: str, body: str | None = None) -> dict[ArticleCategory, int]:
        """Number of distinct keywords from each category found in the text."""
        text = f"{title or ''} {body or ''}".lower()
        return {
            category: sum(1 for pattern in patterns if pattern.search(text))
            for category, patterns in _KEYWORD_PATTERNS.items()
        }

    def classify(self, title: str, body: str | None = None) -> ArticleCategory:
        scores = self.score(title, body)
        best = max(scores.values(), default=0)
        if best == 0:
            return ArticleCategory.OTHER

        leaders = [category for category, hits in scores.items() if hits == best]
        if len(leaders) > 1:
            return ArticleCategory.OTHER
        return leaders[0]
