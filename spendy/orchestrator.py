"""
Main Orchestrator for Spendy

This module ties together all the components and defines the
end-to-end flows for:
1. Session (cold start → login/unlock → authenticated calls → logout)
2. Dashboard (fetch transactions → classify → aggregate)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every authenticated call goes through the session's 401 policy
- Analytics only ever sees data the expenses API returned
- Every step is audited

Usage:
    components = create_app_components()
    await components.session.initialize()
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from spendy.analytics import AggregationEngine, filter_by_direction, net_balance
from spendy.audit import AuditLogger, InMemoryAuditStorage
from spendy.config import Settings, get_settings
from spendy.models.expense import (
    AnalyticsFilter,
    ExpenseSummary,
    Transaction,
    TransactionDirection,
)
from spendy.services.biometrics import BiometricAuthenticatorInterface
from spendy.services.errors import MalformedResponse, NetworkFailure, SessionExpired
from spendy.services.expenses import ExpenseTransportInterface, HttpExpenseTransport
from spendy.services.identity import IdentityClient
from spendy.services.secure_store import FileSecureStore, SecureStoreInterface
from spendy.services.transport import HttpTransport
from spendy.session import SessionManager, TokenLifecycleManager


logger = structlog.get_logger(__name__)


class DashboardResult(BaseModel):
    """What the dashboard shows after one load."""

    summary: ExpenseSummary = Field(default_factory=ExpenseSummary)
    transactions: list[Transaction] = Field(default_factory=list)
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed total of the listed transactions"
    )
    income_total: Decimal = Decimal("0")
    expenses_total: Decimal = Field(
        default=Decimal("0"),
        description="Outflows of the listed transactions, as a positive amount"
    )
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error_message is None


class DashboardFlow:
    """
    Orchestrates the dashboard load.

    Flow:
    1. Fetch → all transactions of the user (authenticated)
    2. Aggregate → outflow summary for the requested window
    3. List → transactions filtered by direction, with their net balance
       and the income and outflow totals

    Failures never raise: they come back as an error message next to an
    empty result. A 401 has already logged the session out by the time
    it reaches this flow.
    """

    def __init__(
        self,
        expense_transport: ExpenseTransportInterface,
        engine: Optional[AggregationEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._expense_transport = expense_transport
        self._engine = engine or AggregationEngine()
        self._audit_logger = audit_logger

    async def load(
        self,
        filter: Optional[AnalyticsFilter] = None,
        direction: TransactionDirection = TransactionDirection.ALL,
    ) -> DashboardResult:
        filter = filter or AnalyticsFilter.all_time()

        try:
            transactions = await self._expense_transport.fetch_expenses()
        except SessionExpired:
            return DashboardResult(error_message="Session expired, please log in again")
        except (NetworkFailure, MalformedResponse) as e:
            message = f"Failed to load data: {e}"
            logger.warning("dashboard_load_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_dashboard_load_failed(str(e))
            return DashboardResult(error_message=message)

        summary = self._engine.aggregate(transactions, filter)

        if self._audit_logger:
            await self._audit_logger.log_dashboard_loaded(
                transaction_count=len(transactions),
                outflow_count=summary.count,
                filter_mode=filter.mode.value,
            )

        listed = filter_by_direction(transactions, direction)
        income = filter_by_direction(listed, TransactionDirection.INCOME)
        outflows = filter_by_direction(listed, TransactionDirection.EXPENSES)

        return DashboardResult(
            summary=summary,
            transactions=listed,
            balance=net_balance(listed),
            income_total=net_balance(income),
            expenses_total=abs(net_balance(outflows)),
        )


@dataclass
class AppComponents:
    """Everything the application needs, wired together."""

    settings: Settings
    store: SecureStoreInterface
    audit_logger: AuditLogger
    tokens: TokenLifecycleManager
    session: SessionManager
    expenses: ExpenseTransportInterface
    dashboard: DashboardFlow

    def close(self) -> None:
        """Release the HTTP connection pools."""
        self.session.requester.transport.close()
        if isinstance(self.expenses, HttpExpenseTransport):
            self.expenses.requester.transport.close()


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[SecureStoreInterface] = None,
    biometrics: Optional[BiometricAuthenticatorInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings root; loaded from the environment when omitted
        store: Secret storage; the file-backed store when omitted
        biometrics: Platform biometric adapter; unavailable when omitted

    Returns:
        AppComponents. Call `await components.session.initialize()` next.
    """
    settings = settings or get_settings()
    identity_settings = settings.identity
    store_settings = settings.secure_store

    store = store or FileSecureStore(store_settings.path)
    audit_logger = AuditLogger(InMemoryAuditStorage())

    identity_transport = HttpTransport(identity_settings.base_url, settings=identity_settings)
    identity = IdentityClient(identity_transport)
    tokens = TokenLifecycleManager(
        store,
        identity,
        settings=store_settings,
        audit_logger=audit_logger,
    )

    app_settings = settings.app
    session = SessionManager(
        tokens,
        identity,
        identity_transport,
        biometrics=biometrics,
        audit_logger=audit_logger,
        settings=app_settings,
    )

    expense_settings = settings.expenses
    expense_transport = HttpTransport(expense_settings.base_url, settings=identity_settings)
    expenses = HttpExpenseTransport(
        session.authorized(expense_transport),
        settings=expense_settings,
    )

    dashboard = DashboardFlow(
        expenses,
        engine=AggregationEngine(settings=settings.analytics),
        audit_logger=audit_logger,
    )

    logger.info(
        "app_components_created",
        environment=app_settings.app_environment,
        identity_url=identity_settings.base_url,
    )

    return AppComponents(
        settings=settings,
        store=store,
        audit_logger=audit_logger,
        tokens=tokens,
        session=session,
        expenses=expenses,
        dashboard=dashboard,
    )
