"""
Budget calculation utilities: period boundaries, utilization and projection.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from costguard.modules.budgets.domain.models import BudgetStatus, TimeUnit, Utilization

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value) -> Decimal:
    """Round to 2 decimal places (half-up)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def get_period_start(time_unit: TimeUnit, today: date) -> date:
    """First day of the budget's current period. Unknown units fall back to monthly."""
    if time_unit == TimeUnit.QUARTERLY:
        quarter = (today.month - 1) // 3
        return date(today.year, quarter * 3 + 1, 1)
    if time_unit == TimeUnit.ANNUALLY:
        return date(today.year, 1, 1)
    return date(today.year, today.month, 1)


def get_next_period_start(time_unit: TimeUnit, today: date) -> date:
    """First day of the period following the current one."""
    start = get_period_start(time_unit, today)
    if time_unit == TimeUnit.ANNUALLY:
        return date(start.year + 1, 1, 1)

    months = 3 if time_unit == TimeUnit.QUARTERLY else 1
    month_index = start.month - 1 + months
    return date(start.year + month_index // 12, month_index % 12 + 1, 1)


def get_budget_status(utilization: Decimal, threshold: int) -> BudgetStatus:
    if utilization >= HUNDRED:
        return BudgetStatus.EXCEEDED
    if utilization >= threshold:
        return BudgetStatus.WARNING
    return BudgetStatus.ON_TRACK


def calculate_utilization(
    limit: Decimal,
    current_spend: Decimal,
    threshold: int,
    time_unit: TimeUnit,
    today: date,
) -> Utilization:
    """
    Build utilization metrics for a budget.

    A zero limit yields zero utilization (never a division by zero).
    Status is derived from the rounded utilization so the reported
    percentage and status always agree.
    """
    spend = round_money(current_spend)
    pct = round_money(spend / limit * HUNDRED) if limit > 0 else Decimal("0.00")

    start = get_period_start(time_unit, today)
    period_days = (get_next_period_start(time_unit, today) - start).days
    elapsed_days = (today - start).days + 1
    projected = round_money(spend / elapsed_days * period_days) if elapsed_days > 0 else Decimal("0.00")

    return Utilization(
        current_spend=spend,
        limit=limit,
        utilization=pct,
        remaining_budget=round_money(max(Decimal("0"), limit - spend)),
        status=get_budget_status(pct, threshold),
        projected_spend=projected,
        days_remaining=max(0, period_days - elapsed_days),
    )


def zero_utilization(limit: Decimal) -> Utilization:
    """Safe default used when a budget's spend cannot be determined."""
    return Utilization(
        current_spend=Decimal("0.00"),
        limit=limit,
        utilization=Decimal("0.00"),
        remaining_budget=limit,
        status=BudgetStatus.ON_TRACK,
        degraded=True,
    )
