import pytest
from unittest.mock import AsyncMock, MagicMock
from datetime import datetime, timezone
from decimal import Decimal
from botocore.exceptions import ClientError

from costguard.shared.adapters.aws_budgets import AWSBudgetsAdapter
from costguard.shared.core.exceptions import AdapterError


def _session(clients):
    """Session whose client(service) context managers yield the given mocks."""
    def make_cm(service, **_):
        cm = MagicMock()
        cm.__aenter__.return_value = clients[service]
        cm.__aexit__.return_value = None
        return cm

    session = MagicMock()
    session.client.side_effect = make_cm
    return session


@pytest.mark.asyncio
async def test_account_id_resolved_through_sts_once():
    sts = AsyncMock()
    sts.get_caller_identity.return_value = {"Account": "123456789012"}
    adapter = AWSBudgetsAdapter(session=_session({"sts": sts}))
    adapter._account_id = None

    assert await adapter.get_account_id() == "123456789012"
    assert await adapter.get_account_id() == "123456789012"
    assert sts.get_caller_identity.await_count == 1


@pytest.mark.asyncio
async def test_list_budgets_paginates_and_parses():
    budgets = AsyncMock()
    budgets.describe_budgets.side_effect = [
        {
            "Budgets": [{
                "BudgetName": "Org",
                "BudgetLimit": {"Amount": "1000.0", "Unit": "USD"},
                "TimeUnit": "MONTHLY",
                "BudgetType": "COST",
                "CostFilters": {"Service": ["AWS Lambda"]},
                "CalculatedSpend": {
                    "ActualSpend": {"Amount": "420.5", "Unit": "USD"},
                    "ForecastedSpend": {"Amount": "900", "Unit": "USD"},
                },
            }],
            "NextToken": "t2",
        },
        {"Budgets": [{"BudgetName": "Usage", "BudgetType": "USAGE"}]},
    ]
    adapter = AWSBudgetsAdapter(session=_session({"budgets": budgets}))
    adapter._account_id = "123456789012"

    records = await adapter.list_budgets()

    assert [r.budget_name for r in records] == ["Org", "Usage"]
    org = records[0]
    assert org.limit_amount == Decimal("1000.0")
    assert org.cost_filters == {"Service": ["AWS Lambda"]}
    assert org.actual_spend == Decimal("420.5")
    assert org.forecasted_spend == Decimal("900")
    assert records[1].actual_spend is None
    assert budgets.describe_budgets.await_args_list[1].kwargs["NextToken"] == "t2"


@pytest.mark.asyncio
async def test_list_budgets_client_error():
    budgets = AsyncMock()
    budgets.describe_budgets.side_effect = ClientError(
        {"Error": {"Code": "InternalErrorException", "Message": "boom"}}, "DescribeBudgets"
    )
    adapter = AWSBudgetsAdapter(session=_session({"budgets": budgets}))
    adapter._account_id = "123456789012"

    with pytest.raises(AdapterError) as excinfo:
        await adapter.list_budgets()
    assert excinfo.value.code == "InternalErrorException"


@pytest.mark.asyncio
async def test_performance_history():
    budgets = AsyncMock()
    budgets.describe_budget_performance_history.return_value = {
        "BudgetPerformanceHistory": {
            "BudgetedAndActualAmountsList": [
                {
                    "BudgetedAmount": {"Amount": "1000", "Unit": "USD"},
                    "ActualAmount": {"Amount": "875.10", "Unit": "USD"},
                    "TimePeriod": {"Start": datetime(2026, 1, 1, tzinfo=timezone.utc)},
                },
            ]
        }
    }
    adapter = AWSBudgetsAdapter(session=_session({"budgets": budgets}))
    adapter._account_id = "123456789012"

    history = await adapter.get_performance_history("Org", months=3)

    assert history == [{
        "period_start": "2026-01-01",
        "budgeted": Decimal("1000"),
        "actual": Decimal("875.10"),
    }]
    assert budgets.describe_budget_performance_history.await_args.kwargs["BudgetName"] == "Org"
