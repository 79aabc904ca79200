"""
Expense and Analytics Models for Spendy

Transactions arrive from the expenses API; everything else in this module
is DERIVED data recomputed on every aggregation call and never persisted.

DESIGN DECISION: Money is Decimal end to end. The backend sends JSON
floats; pydantic converts them through their string form so -12.3 stays
-12.3 rather than becoming -12.300000000000000710542735760100.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class FilterMode(str, Enum):
    """Time window applied by the aggregation engine."""
    ALL = "all"
    MONTH = "month"
    DATE_RANGE = "date_range"


class BucketGranularity(str, Enum):
    """Size of a time-series bucket."""
    DAY = "day"
    MONTH = "month"


class TransactionDirection(str, Enum):
    """Dashboard filter on the sign of the amount."""
    ALL = "all"
    INCOME = "income"        # amount > 0
    EXPENSES = "expenses"    # amount < 0


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single expense/income record as served by the expenses API.

    Identity is `id`. Amount is signed: negative values are outflows.
    Dates are kept as the raw strings the backend sent; they are parsed
    lazily by the analytics layer which knows the accepted formats.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(..., min_length=1)
    type: str = ""
    product: str = ""
    started_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("started_at", "startedAt", "startedDate"),
    )
    completed_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("completed_at", "completedAt", "completedDate"),
    )
    description: str = Field(
        default="",
        validation_alias=AliasChoices("description", "userDescription"),
    )
    amount: Decimal
    fee: Optional[Decimal] = None
    currency: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Numeric identifiers are accepted and kept as strings."""
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator('description', mode='before')
    @classmethod
    def none_description_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_outflow(self) -> bool:
        return self.amount < 0

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    @property
    def magnitude(self) -> Decimal:
        return abs(self.amount)


# =============================================================================
# CLASSIFICATION
# =============================================================================

class CanonicalCategory(BaseModel):
    """
    Result of classifying a transaction.

    `key` is the canonical table key; `label` is what the UI shows. For
    backend categories that are not in the table the key is the
    uncategorized key but the label keeps the backend text.
    """
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    color: str = Field(..., pattern=r"^#[0-9A-F]{6}$")
    icon: str


# =============================================================================
# AGGREGATION
# =============================================================================

class AnalyticsFilter(BaseModel):
    """
    Time window for an aggregation call.

    Use the constructors rather than building the model by hand:
        AnalyticsFilter.all_time()
        AnalyticsFilter.for_month(2024, 1)
        AnalyticsFilter.between(date(2024, 1, 1), date(2024, 3, 31))
    """
    model_config = ConfigDict(frozen=True)

    mode: FilterMode = FilterMode.ALL
    month: Optional[date] = Field(
        default=None,
        description="Any day of the selected month (MONTH mode)"
    )
    start: Optional[date] = None
    end: Optional[date] = None

    @model_validator(mode='after')
    def validate_parameters(self) -> 'AnalyticsFilter':
        if self.mode == FilterMode.MONTH and self.month is None:
            raise ValueError("MONTH filter requires a month")
        if self.mode == FilterMode.DATE_RANGE:
            if self.start is None or self.end is None:
                raise ValueError("DATE_RANGE filter requires start and end")
            if self.end < self.start:
                raise ValueError("Date range end cannot be before start")
        return self

    @classmethod
    def all_time(cls) -> 'AnalyticsFilter':
        return cls(mode=FilterMode.ALL)

    @classmethod
    def for_month(cls, year: int, month: int) -> 'AnalyticsFilter':
        return cls(mode=FilterMode.MONTH, month=date(year, month, 1))

    @classmethod
    def between(cls, start: date, end: date) -> 'AnalyticsFilter':
        return cls(mode=FilterMode.DATE_RANGE, start=start, end=end)


class CategoryMetric(BaseModel):
    """Spending summed for one category."""

    name: str
    color: str
    icon: str
    total_amount: Decimal = Decimal("0")
    count: int = Field(default=0, ge=0)


class TimeSeriesPoint(BaseModel):
    """One bucket of the spending chart."""
    model_config = ConfigDict(frozen=True)

    bucket_label: str
    bucket_start: date
    amount: Decimal


class ExpenseSummary(BaseModel):
    """
    Everything the analytics screen needs.

    INVARIANT: `series` is strictly increasing on `bucket_start`.
    """

    total: Decimal = Decimal("0")
    average: Decimal = Decimal("0")
    max: Decimal = Decimal("0")
    count: int = Field(default=0, ge=0)
    categories: list[CategoryMetric] = Field(default_factory=list)
    series: list[TimeSeriesPoint] = Field(default_factory=list)
    granularity: BucketGranularity = BucketGranularity.MONTH

    @model_validator(mode='after')
    def validate_series_order(self) -> 'ExpenseSummary':
        starts = [point.bucket_start for point in self.series]
        if any(later <= earlier for earlier, later in zip(starts, starts[1:])):
            raise ValueError("Time series must be strictly increasing")
        return self

    @property
    def is_empty(self) -> bool:
        return self.count == 0
