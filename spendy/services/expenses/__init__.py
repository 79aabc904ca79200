"""Expense transport package."""

from spendy.services.expenses.http import HttpExpenseTransport, decode_transactions
from spendy.services.expenses.interface import ExpenseTransportInterface

__all__ = [
    "ExpenseTransportInterface",
    "HttpExpenseTransport",
    "decode_transactions",
]
