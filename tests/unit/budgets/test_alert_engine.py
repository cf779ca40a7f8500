from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from costguard.modules.budgets.domain.alert_engine import AlertEngine, get_alert_severity
from costguard.modules.budgets.domain.calculations import calculate_utilization
from costguard.modules.budgets.domain.models import (
    AlertType,
    BudgetType,
    NormalizedBudget,
    Severity,
    TimeUnit,
)
from tests.fakes import InMemoryBudgetStore


def make_budget(spend, limit="100", threshold=80, budget_id="budget-1") -> NormalizedBudget:
    limit = Decimal(limit)
    return NormalizedBudget(
        id=budget_id,
        name="Production",
        type=BudgetType.CUSTOM,
        limit=limit,
        alert_threshold=threshold,
        owner_user_id="user-1",
        utilization=calculate_utilization(
            limit, Decimal(str(spend)), threshold, TimeUnit.MONTHLY, datetime.now(timezone.utc).date()
        ),
    )


@pytest.mark.parametrize("spend, severity", [
    (85, Severity.MEDIUM),
    (96, Severity.HIGH),
    (100, Severity.CRITICAL),
    (82, Severity.LOW),
])
@pytest.mark.asyncio
async def test_severity_from_utilization(spend, severity):
    alerts = await AlertEngine(InMemoryBudgetStore()).check_thresholds([make_budget(spend)])
    assert len(alerts) == 1
    assert alerts[0].severity == severity


def test_critical_regardless_of_threshold():
    assert get_alert_severity(Decimal("100"), 100) == Severity.CRITICAL
    assert get_alert_severity(Decimal("150"), 10) == Severity.CRITICAL


@pytest.mark.asyncio
async def test_alert_type_and_fields():
    alerts = await AlertEngine(InMemoryBudgetStore()).check_thresholds([make_budget(120)])
    alert = alerts[0]
    assert alert.alert_type == AlertType.BUDGET_EXCEEDED
    assert alert.current_utilization == Decimal("120.00")
    assert alert.remaining_budget == Decimal("0.00")
    assert alert.user_id == "user-1"

    alerts = await AlertEngine(InMemoryBudgetStore()).check_thresholds([make_budget(90)])
    assert alerts[0].alert_type == AlertType.THRESHOLD_REACHED


@pytest.mark.asyncio
async def test_below_threshold_no_alert():
    store = InMemoryBudgetStore()
    alerts = await AlertEngine(store).check_thresholds([make_budget(50)])
    assert alerts == []
    assert store.last_sent == {}


@pytest.mark.asyncio
async def test_budget_without_utilization_is_skipped():
    budget = make_budget(90)
    budget.utilization = None
    assert await AlertEngine(InMemoryBudgetStore()).check_thresholds([budget], force_alert=True) == []


@pytest.mark.asyncio
async def test_second_pass_within_window_is_suppressed():
    store = InMemoryBudgetStore()
    engine = AlertEngine(store)

    first = await engine.check_thresholds([make_budget(85)])
    second = await engine.check_thresholds([make_budget(85)])

    assert len(first) == 1
    assert second == []
    assert "budget-1" in store.last_sent


@pytest.mark.asyncio
async def test_alerts_again_after_window():
    store = InMemoryBudgetStore()
    store.last_sent["budget-1"] = datetime.now(timezone.utc) - timedelta(hours=24, minutes=1)

    alerts = await AlertEngine(store).check_thresholds([make_budget(85)])

    assert len(alerts) == 1
    assert store.last_sent["budget-1"] > datetime.now(timezone.utc) - timedelta(minutes=1)


@pytest.mark.asyncio
async def test_force_alert_bypasses_threshold_and_cooldown():
    store = InMemoryBudgetStore()
    recent = datetime.now(timezone.utc) - timedelta(hours=1)
    store.last_sent["budget-1"] = recent

    engine = AlertEngine(store)
    first = await engine.check_thresholds([make_budget(10)], force_alert=True)
    second = await engine.check_thresholds([make_budget(10)], force_alert=True)

    assert len(first) == 1 and len(second) == 1
    assert first[0].severity == Severity.INFO
    # Forced alerts leave suppression state untouched
    assert store.last_sent["budget-1"] == recent


@pytest.mark.asyncio
async def test_suppression_read_failure_fails_open():
    store = InMemoryBudgetStore()
    store.get_last_alert_sent = AsyncMock(side_effect=RuntimeError("store timeout"))
    store.record_alert_sent = AsyncMock(return_value=True)

    alerts = await AlertEngine(store).check_thresholds([make_budget(90)])

    assert len(alerts) == 1
    # Unverified read: the write is unconditional
    assert store.record_alert_sent.await_args.kwargs["conditional"] is False


@pytest.mark.asyncio
async def test_suppression_write_failure_still_alerts():
    store = InMemoryBudgetStore()
    store.record_alert_sent = AsyncMock(side_effect=RuntimeError("write failed"))

    alerts = await AlertEngine(store).check_thresholds([make_budget(90)])

    assert len(alerts) == 1


@pytest.mark.asyncio
async def test_lost_compare_and_swap_drops_alert():
    store = InMemoryBudgetStore()
    store.record_alert_sent = AsyncMock(return_value=False)

    alerts = await AlertEngine(store).check_thresholds([make_budget(90)])

    assert alerts == []
    kwargs = store.record_alert_sent.await_args.kwargs
    assert kwargs["conditional"] is True
    assert kwargs["expected_last_sent"] is None


@pytest.mark.asyncio
async def test_one_failing_budget_does_not_block_others():
    engine = AlertEngine(InMemoryBudgetStore())
    original = engine.evaluate_budget_alerts

    async def flaky(budget, force_alert=False):
        if budget.id == "bad":
            raise ValueError("boom")
        return await original(budget, force_alert)

    engine.evaluate_budget_alerts = flaky
    alerts = await engine.check_thresholds([
        make_budget(90, budget_id="bad"),
        make_budget(90, budget_id="good"),
    ])

    assert [a.budget_id for a in alerts] == ["good"]
