"""
Category Classifier

Maps a transaction's backend category and free-text description to a
CanonicalCategory (key, label, color, icon).

ALGORITHM (deterministic, no learning):
1. A non-empty, non-sentinel backend category is AUTHORITATIVE. It is
   matched case-insensitively against every key, label and alias of the
   category table. An unknown category keeps its own text as the label
   but gets the uncategorized color/icon.
2. Otherwise the lower-cased description is tested against the ordered
   keyword rules. First match wins.
3. Otherwise: Uncategorized.
"""

from typing import Iterable, Optional

import structlog

from spendy.analytics.categories import (
    DEFAULT_CATEGORIES,
    DEFAULT_COLOR,
    DEFAULT_ICON,
    DEFAULT_KEYWORD_RULES,
    UNCATEGORIZED_KEY,
    UNCATEGORIZED_SENTINELS,
    CategoryDefinition,
    KeywordRules,
    load_keyword_rules,
)
from spendy.config import AnalyticsSettings
from spendy.models.expense import CanonicalCategory


logger = structlog.get_logger(__name__)


class CategoryClassifier:
    """Rule-based category inference over swappable tables."""

    def __init__(
        self,
        categories: Iterable[CategoryDefinition] = DEFAULT_CATEGORIES,
        rules: KeywordRules = DEFAULT_KEYWORD_RULES,
    ):
        self._categories = {c.key: c for c in categories}
        if UNCATEGORIZED_KEY not in self._categories:
            raise ValueError(f"Category table must define '{UNCATEGORIZED_KEY}'")

        unknown = sorted({key for _, key in rules if key not in self._categories})
        if unknown:
            raise ValueError(f"Keyword rules reference unknown categories: {unknown}")

        self._rules = tuple((keyword.lower(), key) for keyword, key in rules)

        # Lower-cased key, label and aliases → definition
        self._lookup: dict[str, CategoryDefinition] = {}
        for definition in self._categories.values():
            for name in (definition.key, definition.label, *definition.aliases):
                self._lookup.setdefault(name.strip().lower(), definition)

    @classmethod
    def from_settings(cls, settings: AnalyticsSettings) -> "CategoryClassifier":
        """Default table, with the keyword rules file from settings if it exists."""
        path = settings.keyword_rules_path
        if path:
            try:
                return cls(rules=load_keyword_rules(path))
            except ValueError as e:
                logger.warning("keyword_rules_not_loaded", path=path, error=str(e))
        return cls()

    @property
    def rules(self) -> KeywordRules:
        return self._rules

    @property
    def uncategorized(self) -> CanonicalCategory:
        return self._categories[UNCATEGORIZED_KEY].to_canonical()

    def classify(
        self,
        category: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CanonicalCategory:
        """
        Classify one transaction.

        Args:
            category: Category sent by the backend, if any
            description: Free-text description (merchant name, memo)
        """
        backend = (category or "").strip()
        if backend.lower() not in UNCATEGORIZED_SENTINELS:
            definition = self._lookup.get(backend.lower())
            if definition is not None:
                return definition.to_canonical()
            return self._categories[UNCATEGORIZED_KEY].to_canonical(label=backend)

        text = (description or "").lower()
        if text.strip():
            for keyword, key in self._rules:
                if keyword in text:
                    return self._categories[key].to_canonical()

        return self.uncategorized

    def style_for(self, key: Optional[str]) -> tuple[str, str]:
        """(color, icon) of a category key; neutral default when unknown."""
        definition = self._categories.get(key or "")
        if definition is None:
            return DEFAULT_COLOR, DEFAULT_ICON
        return definition.color, definition.icon
