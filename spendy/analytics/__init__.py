"""
Analytics Package

Category inference and time-bucketed aggregation over transactions
fetched from the expenses API. Everything here is pure computation.
"""

from spendy.analytics.aggregation import AggregationEngine
from spendy.analytics.categories import (
    DEFAULT_CATEGORIES,
    DEFAULT_KEYWORD_RULES,
    UNCATEGORIZED_KEY,
    CategoryDefinition,
    load_keyword_rules,
)
from spendy.analytics.classifier import CategoryClassifier
from spendy.analytics.dates import parse_transaction_date, transaction_date
from spendy.analytics.filters import (
    filter_by_date_range,
    filter_by_direction,
    net_balance,
)

__all__ = [
    # Engine
    "AggregationEngine",
    # Classification
    "CategoryClassifier",
    "CategoryDefinition",
    "DEFAULT_CATEGORIES",
    "DEFAULT_KEYWORD_RULES",
    "UNCATEGORIZED_KEY",
    "load_keyword_rules",
    # Dates
    "parse_transaction_date",
    "transaction_date",
    # Filters
    "filter_by_date_range",
    "filter_by_direction",
    "net_balance",
]
