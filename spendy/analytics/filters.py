"""
Transaction list filters used by the dashboard.

These are plain functions over lists; they never mutate their input.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from spendy.analytics.dates import transaction_date
from spendy.models.expense import Transaction, TransactionDirection


def filter_by_direction(
    transactions: Iterable[Transaction],
    direction: TransactionDirection,
) -> list[Transaction]:
    """Keep income (amount > 0), expenses (amount < 0) or everything."""
    if direction == TransactionDirection.INCOME:
        return [t for t in transactions if t.is_income]
    if direction == TransactionDirection.EXPENSES:
        return [t for t in transactions if t.is_outflow]
    return list(transactions)


def net_balance(transactions: Iterable[Transaction]) -> Decimal:
    """Signed sum of all amounts."""
    return sum((t.amount for t in transactions), Decimal("0"))


def filter_by_date_range(
    transactions: Iterable[Transaction],
    start: date,
    end: date,
) -> list[Transaction]:
    """
    Keep transactions dated between start and end, both inclusive.

    Transactions whose date cannot be parsed are dropped.
    """
    if end < start:
        raise ValueError("Date range end cannot be before start")

    kept = []
    for transaction in transactions:
        day = transaction_date(transaction)
        if day is not None and start <= day <= end:
            kept.append(transaction)
    return kept
