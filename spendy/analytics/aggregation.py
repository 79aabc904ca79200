"""
Aggregation Engine

DESIGN DECISION: Aggregation is DETERMINISTIC and PURE.
The same transactions and filter always give the same summary; nothing
is cached or persisted between calls.

Pipeline for one call:
1. Outflows only (amount < 0), reported as magnitudes
2. Time window from the filter
3. Scalars: total, count, average, max
4. Category breakdown via the CategoryClassifier
5. Time series bucketed by day or month, ascending

Empty input is not an error: it yields an all-zero summary.
"""

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

import structlog

from spendy.analytics.classifier import CategoryClassifier
from spendy.analytics.dates import transaction_date
from spendy.config import AnalyticsSettings, get_settings
from spendy.models.expense import (
    AnalyticsFilter,
    BucketGranularity,
    CategoryMetric,
    ExpenseSummary,
    FilterMode,
    TimeSeriesPoint,
    Transaction,
)


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class AggregationEngine:
    """
    Computes the analytics summary for a list of transactions.

    GUARANTEES:
    - Never raises on empty or partially malformed input
    - Category order: total descending, ties in first-seen order
    - Series strictly increasing on bucket start
    """

    def __init__(
        self,
        classifier: Optional[CategoryClassifier] = None,
        settings: Optional[AnalyticsSettings] = None,
    ):
        self._settings = settings or get_settings().analytics
        self._classifier = classifier or CategoryClassifier.from_settings(self._settings)

    @property
    def classifier(self) -> CategoryClassifier:
        return self._classifier

    def aggregate(
        self,
        transactions: Iterable[Transaction],
        filter: Optional[AnalyticsFilter] = None,
    ) -> ExpenseSummary:
        """Summarize the outflows of `transactions` inside the filter window."""
        filter = filter or AnalyticsFilter.all_time()
        granularity = self.granularity_for(filter)

        dated = [(t, transaction_date(t)) for t in transactions if t.is_outflow]
        window = self._window(filter)
        if window is not None:
            start, end = window
            dated = [(t, d) for t, d in dated if d is not None and start <= d <= end]

        if not dated:
            return ExpenseSummary(granularity=granularity)

        magnitudes = [t.magnitude for t, _ in dated]
        total = sum(magnitudes, Decimal("0"))
        count = len(magnitudes)

        summary = ExpenseSummary(
            total=total,
            average=(total / count).quantize(CENT, rounding=ROUND_HALF_UP),
            max=max(magnitudes),
            count=count,
            categories=self._categories([t for t, _ in dated]),
            series=self._series(dated, granularity),
            granularity=granularity,
        )

        undated = sum(1 for _, d in dated if d is None)
        if undated:
            logger.debug("transactions_without_date", count=undated)
        return summary

    def granularity_for(self, filter: AnalyticsFilter) -> BucketGranularity:
        """
        ALL → months; MONTH → days; DATE_RANGE → months when the range is
        longer than the configured threshold, days otherwise.
        """
        if filter.mode == FilterMode.MONTH:
            return BucketGranularity.DAY
        if filter.mode == FilterMode.DATE_RANGE:
            span_days = (filter.end - filter.start).days + 1
            if span_days > self._settings.monthly_bucket_threshold_days:
                return BucketGranularity.MONTH
            return BucketGranularity.DAY
        return BucketGranularity.MONTH

    def _window(self, filter: AnalyticsFilter) -> Optional[tuple[date, date]]:
        if filter.mode == FilterMode.MONTH:
            first = filter.month.replace(day=1)
            last_day = calendar.monthrange(first.year, first.month)[1]
            return first, first.replace(day=last_day)
        if filter.mode == FilterMode.DATE_RANGE:
            return filter.start, filter.end
        return None

    def _categories(self, transactions: list[Transaction]) -> list[CategoryMetric]:
        """Group by display label, then sort by total (stable on first appearance)."""
        groups: dict[str, CategoryMetric] = {}

        for transaction in transactions:
            canonical = self._classifier.classify(
                transaction.category, transaction.description
            )
            metric = groups.get(canonical.label)
            if metric is None:
                metric = CategoryMetric(
                    name=canonical.label,
                    color=canonical.color,
                    icon=canonical.icon,
                )
                groups[canonical.label] = metric
            metric.total_amount += transaction.magnitude
            metric.count += 1

        return sorted(groups.values(), key=lambda m: m.total_amount, reverse=True)

    def _series(
        self,
        dated: list[tuple[Transaction, Optional[date]]],
        granularity: BucketGranularity,
    ) -> list[TimeSeriesPoint]:
        """Sum magnitudes per bucket; transactions without a date are skipped."""
        buckets: dict[date, Decimal] = {}

        for transaction, day in dated:
            if day is None:
                continue
            start = day.replace(day=1) if granularity == BucketGranularity.MONTH else day
            buckets[start] = buckets.get(start, Decimal("0")) + transaction.magnitude

        return [
            TimeSeriesPoint(
                bucket_label=self._label(start, granularity),
                bucket_start=start,
                amount=amount,
            )
            for start, amount in sorted(buckets.items())
        ]

    def _label(self, start: date, granularity: BucketGranularity) -> str:
        if granularity == BucketGranularity.MONTH:
            return MONTH_ABBREVIATIONS[start.month - 1]
        return str(start.day)
