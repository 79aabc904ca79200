"""
Expense Transport Interface

DESIGN DECISION: The analytics layer never knows where transactions come
from. It consumes whatever this interface returns:

    fetch_expenses()                     -> every transaction of the user
    fetch_expenses_by_date(start, end)   -> transactions inside the range

Implementations sending authenticated requests MUST route them through
the session's AuthorizedRequester, so a 401 logs the user out.
"""

from abc import ABC, abstractmethod
from datetime import date

from spendy.models.expense import Transaction


class ExpenseTransportInterface(ABC):
    """Abstract source of transactions."""

    @abstractmethod
    async def fetch_expenses(self) -> list[Transaction]:
        """
        Fetch all transactions of the signed-in user.

        Raises:
            SessionExpired: The server answered 401 (already logged out)
            NetworkFailure: Transport problem or unexpected status
            MalformedResponse: Records could not be decoded
        """
        pass

    @abstractmethod
    async def fetch_expenses_by_date(self, start: date, end: date) -> list[Transaction]:
        """Fetch transactions dated between start and end, both inclusive."""
        pass
