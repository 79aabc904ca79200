"""
Category Tables

DATA, not logic. The classifier only knows how to match; everything it
matches against lives here:

- DEFAULT_CATEGORIES: canonical key → display label, color, icon and the
  backend spellings (aliases) that mean the same category
- DEFAULT_KEYWORD_RULES: ordered (keyword, category key) substring rules

IMPORTANT: The keyword rules are an ordered tuple, first match wins.
Coffee shops come before the generic "market" keyword so that
"Starbucks Market" is dining, not groceries. Never turn this into a dict.
"""

import json
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from spendy.models.expense import CanonicalCategory


UNCATEGORIZED_KEY = "uncategorized"

# Backend values that mean "no category"
UNCATEGORIZED_SENTINELS = frozenset({
    "",
    "uncategorized",
    "non classificato",
    "none",
    "null",
})

DEFAULT_COLOR = "#4F46E5"
DEFAULT_ICON = "questionmark.circle.fill"


class CategoryDefinition(BaseModel):
    """One row of the category table."""
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    color: str = Field(..., pattern=r"^#[0-9A-F]{6}$")
    icon: str
    aliases: tuple[str, ...] = ()

    def to_canonical(self, label: Optional[str] = None) -> CanonicalCategory:
        return CanonicalCategory(
            key=self.key,
            label=label or self.label,
            color=self.color,
            icon=self.icon,
        )


class KeywordRule(BaseModel):
    """A `{keyword, category}` entry of a keyword rules file."""

    keyword: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)


KeywordRules = tuple[tuple[str, str], ...]


# Aliases are the category names the backend (and older clients) send.
DEFAULT_CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        key="dining",
        label="Dining",
        color="#F97316",
        icon="fork.knife",
        aliases=("Ristorazione e Bar", "Restaurants", "Food & Drink"),
    ),
    CategoryDefinition(
        key="groceries",
        label="Groceries",
        color="#22C55E",
        icon="basket.fill",
        aliases=("Supermercati e Alimentari", "Supermarkets"),
    ),
    CategoryDefinition(
        key="fuel",
        label="Fuel & Car",
        color="#3B82F6",
        icon="fuelpump.fill",
        aliases=("Carburante e Auto", "Fuel", "Car"),
    ),
    CategoryDefinition(
        key="transport",
        label="Transport",
        color="#3B82F6",
        icon="tram.fill",
        aliases=("Trasporti", "Transportation"),
    ),
    CategoryDefinition(
        key="shopping",
        label="Shopping",
        color="#EC4899",
        icon="bag.fill",
        aliases=("Shopping e Abbigliamento", "Clothing"),
    ),
    CategoryDefinition(
        key="subscriptions",
        label="Subscriptions",
        color="#8B5CF6",
        icon="play.tv.fill",
        aliases=("Abbonamenti e Servizi Digitali", "Digital Services"),
    ),
    CategoryDefinition(
        key="travel",
        label="Travel",
        color="#06B6D4",
        icon="airplane",
        aliases=("Alloggi e Viaggi", "Accommodation"),
    ),
    CategoryDefinition(
        key="transfers",
        label="Transfers",
        color="#EF4444",
        icon="arrow.left.arrow.right",
        aliases=("Pagamenti e Trasferimenti", "Payments"),
    ),
    CategoryDefinition(
        key="misc",
        label="Miscellaneous",
        color="#4F46E5",
        icon="tag.fill",
        aliases=("Varie", "Other"),
    ),
    CategoryDefinition(
        key=UNCATEGORIZED_KEY,
        label="Uncategorized",
        color=DEFAULT_COLOR,
        icon=DEFAULT_ICON,
        aliases=("Non classificato",),
    ),
)


DEFAULT_KEYWORD_RULES: KeywordRules = (
    # Coffee shops and bars: before "market"
    ("starbucks", "dining"),
    ("coffee", "dining"),
    ("caffe", "dining"),
    ("cafe", "dining"),
    ("bar big", "dining"),
    ("cannavina bar", "dining"),
    ("mcdonald's", "dining"),
    ("burger king", "dining"),
    ("kfc", "dining"),
    ("ristorante", "dining"),
    ("ristorazione", "dining"),
    ("vino e biga", "dining"),
    ("sandwich", "dining"),
    ("pizza", "dining"),
    ("piadineria", "dining"),
    ("mastroianni", "dining"),
    ("mariano balato", "dining"),
    # Subscriptions
    ("disney+", "subscriptions"),
    ("netflix", "subscriptions"),
    ("spotify", "subscriptions"),
    ("google one", "subscriptions"),
    ("amazon", "subscriptions"),
    ("g2a.com", "subscriptions"),
    # Groceries
    ("carrefour", "groceries"),
    ("lidl", "groceries"),
    ("sole 365", "groceries"),
    ("green garden", "groceries"),
    ("pantry", "groceries"),
    ("supermercato", "groceries"),
    ("market", "groceries"),
    # Transport: "airport" before the travel keywords
    ("uber", "transport"),
    ("free now", "transport"),
    ("trenitalia", "transport"),
    ("taxi", "transport"),
    ("flight", "transport"),
    ("airport", "transport"),
    # Transfers
    ("transfer to", "transfers"),
    ("transfer from", "transfers"),
    ("payment from", "transfers"),
    ("balance migration", "transfers"),
    ("mangopay", "transfers"),
    ("sumup", "transfers"),
    # Shopping
    ("zalando", "shopping"),
    ("douglas", "shopping"),
    ("vinted", "shopping"),
    ("proshop", "shopping"),
    # Travel
    ("airbnb", "travel"),
    ("hotel", "travel"),
    ("booking", "travel"),
    ("vacation", "travel"),
    # Miscellaneous merchants
    ("samnite", "misc"),
    ("samnet", "misc"),
    ("margroup", "misc"),
    ("colella group", "misc"),
    ("fratelli della minerva", "misc"),
    ("officinastu", "misc"),
    ("studiouno", "misc"),
    ("moneynet", "misc"),
    # Fuel: last, "gas" is a short keyword
    ("petrol", "fuel"),
    ("fuel", "fuel"),
    ("carburante", "fuel"),
    ("gas", "fuel"),
)


_RULES_ADAPTER = TypeAdapter(list[KeywordRule])


def load_keyword_rules(path: Union[str, Path]) -> KeywordRules:
    """
    Load keyword rules from a JSON file, preserving their order.

    The file holds a list of objects:
        [{"keyword": "starbucks", "category": "dining"}, ...]

    Raises:
        ValueError: If the file cannot be read or is not a valid rule list
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot read keyword rules from {path}: {e}") from e

    try:
        rules = _RULES_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid keyword rules in {path}: {e}") from e

    return tuple((rule.keyword.lower(), rule.category) for rule in rules)
