"""
Budget Aggregator

Merges user-defined and provider-native budgets into NormalizedBudget and
computes each budget's utilization for its current period.

A failed spend query for one budget never blocks the others: the budget is
evaluated as zero spend and flagged as degraded. Only the budget store
fetch is fatal.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from functools import singledispatch
from typing import List, Optional

import structlog

from costguard.modules.budgets.domain.calculations import (
    calculate_utilization,
    get_period_start,
    zero_utilization,
)
from costguard.modules.budgets.domain.models import (
    NATIVE_BUDGET_ID_PREFIX,
    BudgetType,
    CustomBudgetRecord,
    NativeBudgetRecord,
    NormalizedBudget,
    NotificationConfig,
    TimeUnit,
    Utilization,
)
from costguard.modules.budgets.domain.ports import BudgetStore
from costguard.shared.adapters.base import CostSource, NativeBudgetSource

logger = structlog.get_logger()

DEFAULT_ALERT_THRESHOLD = 80
DEFAULT_CURRENCY = "USD"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _time_unit(raw: Optional[str]) -> TimeUnit:
    try:
        return TimeUnit((raw or TimeUnit.MONTHLY.value).upper())
    except ValueError:
        return TimeUnit.MONTHLY


def _threshold(raw: Optional[int]) -> int:
    if not raw:
        return DEFAULT_ALERT_THRESHOLD
    return min(100, max(1, int(raw)))


@singledispatch
def normalize_budget(record, **_) -> NormalizedBudget:
    raise TypeError(f"Unsupported budget record: {type(record).__name__}")


@normalize_budget.register
def _(record: CustomBudgetRecord, **_) -> NormalizedBudget:
    return NormalizedBudget(
        id=record.budget_id,
        name=record.budget_name or "Unnamed Budget",
        type=BudgetType.CUSTOM,
        limit=max(Decimal("0"), record.monthly_limit or Decimal("0")),
        currency=record.currency or DEFAULT_CURRENCY,
        time_unit=_time_unit(record.time_unit),
        services=list(record.services),
        tags=dict(record.tags),
        alert_threshold=_threshold(record.alert_threshold),
        notifications=NotificationConfig.from_record(record.notifications),
        owner_user_id=record.user_id,
    )


@normalize_budget.register
def _(record: NativeBudgetRecord, owner_user_id: Optional[str] = None,
      alert_threshold: int = DEFAULT_ALERT_THRESHOLD, **_) -> NormalizedBudget:
    filters = record.cost_filters
    tags = {}
    # AWS encodes tag filters as "user:<key>$<value>"
    for entry in filters.get("TagKeyValue", []):
        key, _sep, value = entry.partition("$")
        key = key.removeprefix("user:")
        tags.setdefault(key, []).append(value)

    return NormalizedBudget(
        id=f"{NATIVE_BUDGET_ID_PREFIX}{record.budget_name}",
        name=record.budget_name,
        type=BudgetType.AWS_NATIVE,
        limit=max(Decimal("0"), record.limit_amount),
        currency=record.limit_unit or DEFAULT_CURRENCY,
        time_unit=_time_unit(record.time_unit),
        services=list(filters.get("Service", [])),
        tags=tags,
        alert_threshold=_threshold(alert_threshold),
        notifications=NotificationConfig(email=True),
        owner_user_id=owner_user_id,
    )


class BudgetAggregator:
    def __init__(
        self,
        budget_store: BudgetStore,
        cost_source: CostSource,
        native_source: Optional[NativeBudgetSource] = None,
        native_owner_user_id: Optional[str] = None,
        native_alert_threshold: int = DEFAULT_ALERT_THRESHOLD,
    ):
        self.budget_store = budget_store
        self.cost_source = cost_source
        self.native_source = native_source
        self.native_owner_user_id = native_owner_user_id
        self.native_alert_threshold = native_alert_threshold

    async def aggregate_all_budgets(
        self,
        owner_user_id: Optional[str] = None,
        budget_id: Optional[str] = None,
    ) -> List[NormalizedBudget]:
        """
        Aggregate every active budget with its current utilization.

        Args:
            owner_user_id: Restrict the pass to one owner's budgets (manual runs).
            budget_id: Restrict the pass to a single budget (manual runs).

        Returns:
            Normalized budgets in discovery order: user budgets first, then native ones.

        Raises:
            Whatever the budget store raises; per-budget spend failures are absorbed.
        """
        logger.info("budget_aggregation_started", owner_user_id=owner_user_id, budget_id=budget_id)

        custom_records = await self.budget_store.list_active()
        budgets = [self._safe_normalize(r) for r in custom_records]
        budgets.extend(await self._get_native_budgets())

        if owner_user_id is not None:
            budgets = [b for b in budgets if b.owner_user_id == owner_user_id]
        if budget_id is not None:
            budgets = [b for b in budgets if b.id == budget_id]

        # Budgets that failed normalization already carry a degraded zero utilization
        pending = [b for b in budgets if b.utilization is None]
        utilizations = await asyncio.gather(
            *(self._safe_utilization(b) for b in pending)
        )
        for budget, utilization in zip(pending, utilizations):
            budget.utilization = utilization

        logger.info(
            "budget_aggregation_completed",
            budgets=len(budgets),
            degraded=sum(1 for b in budgets if b.utilization.degraded),
        )
        return budgets

    @staticmethod
    def _safe_normalize(record: CustomBudgetRecord) -> NormalizedBudget:
        """
        Normalize one stored budget. A malformed row is kept as a degraded
        budget with zero spend and its stored filters dropped, so it is
        reported but never queried with a widened filter.
        """
        try:
            return normalize_budget(record)
        except Exception as e:
            logger.error(
                "budget_normalization_failed",
                budget_id=record.budget_id,
                user_id=record.user_id,
                error=str(e),
            )

        limit = max(Decimal("0"), record.monthly_limit or Decimal("0"))
        return NormalizedBudget(
            id=record.budget_id,
            name=record.budget_name or "Unnamed Budget",
            type=BudgetType.CUSTOM,
            limit=limit,
            time_unit=_time_unit(record.time_unit),
            alert_threshold=_threshold(record.alert_threshold),
            owner_user_id=record.user_id,
            utilization=zero_utilization(limit),
        )

    async def _get_native_budgets(self) -> List[NormalizedBudget]:
        if self.native_source is None:
            return []
        try:
            records = await self.native_source.list_budgets()
        except Exception as e:
            logger.error("native_budget_fetch_failed", error=str(e))
            return []

        return [
            normalize_budget(
                r,
                owner_user_id=self.native_owner_user_id,
                alert_threshold=self.native_alert_threshold,
            )
            for r in records
            if r.budget_type == "COST"
        ]

    async def _safe_utilization(self, budget: NormalizedBudget) -> Utilization:
        try:
            return await self.calculate_budget_utilization(budget)
        except Exception as e:
            logger.warning(
                "budget_utilization_failed",
                budget_id=budget.id,
                budget_name=budget.name,
                error=str(e),
            )
            return zero_utilization(budget.limit)

    async def calculate_budget_utilization(self, budget: NormalizedBudget) -> Utilization:
        """Query current-period spend for the budget's filters and derive metrics."""
        today = utc_today()
        start = get_period_start(budget.time_unit, today)

        series = await self.cost_source.get_spend(
            start_date=start,
            end_date=today + timedelta(days=1),  # End is exclusive
            granularity="MONTHLY",
            service_filter=budget.services or None,
            tag_filter=budget.tags or None,
        )
        current_spend = series.total

        logger.debug(
            "budget_spend_resolved",
            budget_id=budget.id,
            start=start.isoformat(),
            current_spend=str(current_spend),
        )
        return calculate_utilization(
            limit=budget.limit,
            current_spend=current_spend,
            threshold=budget.alert_threshold,
            time_unit=budget.time_unit,
            today=today,
        )
