"""
HTTP expense transport.

Reads transactions from the expenses API through an AuthorizedRequester,
so the bearer token is attached and a 401 triggers the logout policy.
"""

from datetime import date
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urlencode

import structlog
from pydantic import TypeAdapter, ValidationError

from spendy.config import ExpenseApiSettings, get_settings
from spendy.models.expense import Transaction
from spendy.services.errors import MalformedResponse, NetworkFailure
from spendy.services.expenses.interface import ExpenseTransportInterface
from spendy.services.transport import TransportResponse

if TYPE_CHECKING:
    from spendy.session.authorized import AuthorizedRequester


logger = structlog.get_logger(__name__)

_TRANSACTIONS_ADAPTER = TypeAdapter(list[Transaction])


def decode_transactions(payload: Any) -> list[Transaction]:
    """
    Decode a list of transaction records.

    Raises:
        MalformedResponse: If the payload is not a list of valid records
    """
    if not isinstance(payload, list):
        raise MalformedResponse("Expenses response is not a JSON list")
    try:
        return _TRANSACTIONS_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise MalformedResponse(
            f"Invalid transaction records: {e.error_count()} errors"
        ) from e


class HttpExpenseTransport(ExpenseTransportInterface):
    """Expense transport over the REST expenses API."""

    def __init__(
        self,
        requester: "AuthorizedRequester",
        settings: Optional[ExpenseApiSettings] = None,
    ):
        self._requester = requester
        self._settings = settings or get_settings().expenses

    @property
    def requester(self) -> "AuthorizedRequester":
        return self._requester

    async def _get(self, path: str) -> list[Transaction]:
        response: TransportResponse = await self._requester.request("GET", path)
        if response.status_code != 200:
            raise NetworkFailure(
                f"Expenses request failed: {response.status_code}",
                status_code=response.status_code,
            )

        transactions = decode_transactions(response.payload())
        logger.debug("expenses_fetched", path=path, count=len(transactions))
        return transactions

    async def fetch_expenses(self) -> list[Transaction]:
        return await self._get(self._settings.list_path)

    async def fetch_expenses_by_date(self, start: date, end: date) -> list[Transaction]:
        if end < start:
            raise ValueError("Date range end cannot be before start")
        query = urlencode({"startDate": start.isoformat(), "endDate": end.isoformat()})
        return await self._get(f"{self._settings.by_date_path}?{query}")
