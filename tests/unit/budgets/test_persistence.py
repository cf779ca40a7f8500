from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from costguard.models import User
from costguard.modules.budgets.domain.models import AlertType
from costguard.modules.budgets.domain.persistence import SQLBudgetStore, SQLUserDirectory
from costguard.shared.core.exceptions import BudgetValidationError
from costguard.shared.db.base import Base
from tests.fakes import make_budget_record


@pytest.fixture
async def db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'budgets.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session

    await engine.dispose()


@pytest.mark.asyncio
async def test_save_and_list_active(db):
    store = SQLBudgetStore(db)
    await store.save(make_budget_record(budget_id="b1", services=["EC2"], tags={"env": "prod"}))
    await store.save(make_budget_record(budget_id="b2", is_active=False))

    active = await store.list_active()

    assert [r.budget_id for r in active] == ["b1"]
    assert active[0].services == ["EC2"]
    assert active[0].tags == {"env": "prod"}
    assert active[0].monthly_limit == Decimal("100.00")


@pytest.mark.asyncio
async def test_get_is_scoped_to_user(db):
    store = SQLBudgetStore(db)
    await store.save(make_budget_record(user_id="alice", budget_id="b1"))

    assert (await store.get("alice", "b1")).budget_id == "b1"
    assert await store.get("bob", "b1") is None


@pytest.mark.asyncio
async def test_budget_id_taken_by_another_user(db):
    store = SQLBudgetStore(db)
    await store.save(make_budget_record(user_id="alice", budget_id="shared"))

    with pytest.raises(BudgetValidationError):
        await store.save(make_budget_record(user_id="bob", budget_id="shared"))


@pytest.mark.asyncio
async def test_resave_keeps_suppression_state(db):
    store = SQLBudgetStore(db)
    await store.save(make_budget_record())
    sent = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    await store.record_alert_sent("budget-1", AlertType.THRESHOLD_REACHED, sent)

    await store.save(make_budget_record(monthly_limit=Decimal("250")))

    record = await store.get("user-1", "budget-1")
    assert record.monthly_limit == Decimal("250.00")
    assert record.last_alert_sent == sent
    assert record.last_alert_type == "THRESHOLD_REACHED"


@pytest.mark.asyncio
async def test_record_alert_sent_compare_and_swap(db):
    store = SQLBudgetStore(db)
    await store.save(make_budget_record())
    first = datetime.now(timezone.utc) - timedelta(days=2)
    second = datetime.now(timezone.utc)

    assert await store.record_alert_sent(
        "budget-1", AlertType.THRESHOLD_REACHED, first, expected_last_sent=None, conditional=True
    )
    # Stale expectation: another run already wrote `first`
    assert not await store.record_alert_sent(
        "budget-1", AlertType.BUDGET_EXCEEDED, second, expected_last_sent=None, conditional=True
    )
    assert await store.record_alert_sent(
        "budget-1", AlertType.BUDGET_EXCEEDED, second, expected_last_sent=first, conditional=True
    )
    assert await store.get_last_alert_sent("budget-1") == second


@pytest.mark.asyncio
async def test_native_budget_alert_state(db):
    store = SQLBudgetStore(db)
    budget_id = "aws-native:Org"
    sent = datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)

    assert await store.get_last_alert_sent(budget_id) is None
    assert await store.record_alert_sent(budget_id, AlertType.BUDGET_EXCEEDED, sent, conditional=True)
    assert await store.get_last_alert_sent(budget_id) == sent
    assert not await store.record_alert_sent(
        budget_id, AlertType.BUDGET_EXCEEDED, sent + timedelta(days=1), expected_last_sent=None, conditional=True
    )


@pytest.mark.asyncio
async def test_update_spend_snapshot(db):
    store = SQLBudgetStore(db)
    await store.save(make_budget_record())

    await store.update_spend_snapshot("user-1", "budget-1", Decimal("42.10"), Decimal("130.51"))

    record = await store.get("user-1", "budget-1")
    assert record.total_spent_this_month == Decimal("42.10")
    assert record.projected_monthly_spend == Decimal("130.51")


@pytest.mark.asyncio
async def test_delete(db):
    store = SQLBudgetStore(db)
    await store.save(make_budget_record())

    assert await store.delete("user-1", "budget-1") is True
    assert await store.delete("user-1", "budget-1") is False


@pytest.mark.asyncio
async def test_user_directory(db):
    db.add(User(user_id="user-1", email="owner@example.com", first_name="Ada"))
    await db.commit()

    user = await SQLUserDirectory(db).get_by_id("user-1")
    assert user.email == "owner@example.com"
    assert user.is_active is True
    assert await SQLUserDirectory(db).get_by_id("missing") is None
