"""
Transaction date parsing.

The backend has served dates in several shapes over time. Formats are
tried in order and the first one that parses wins.
"""

from datetime import date, datetime
from typing import Optional

from spendy.models.expense import Transaction


DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
)


def parse_transaction_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a backend date string; None if no known format matches."""
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+0000"

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def transaction_date(transaction: Transaction) -> Optional[date]:
    """Calendar date of a transaction: start date, else completion date."""
    for value in (transaction.started_at, transaction.completed_at):
        parsed = parse_transaction_date(value)
        if parsed is not None:
            return parsed.date()
    return None
