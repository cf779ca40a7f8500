"""
Budget Persistence - SQLAlchemy implementations of the budget store and user directory.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from costguard.models.budget import BudgetSetting, NativeBudgetAlertState
from costguard.models.user import User
from costguard.modules.budgets.domain.models import (
    NATIVE_BUDGET_ID_PREFIX,
    AlertType,
    CustomBudgetRecord,
)
from costguard.modules.budgets.domain.ports import BudgetStore, UserDirectory, UserRecord
from costguard.shared.core.exceptions import BudgetValidationError

logger = structlog.get_logger()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on read; stored timestamps are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_record(row: BudgetSetting) -> CustomBudgetRecord:
    return CustomBudgetRecord(
        user_id=row.user_id,
        budget_id=row.budget_id,
        budget_name=row.budget_name,
        monthly_limit=row.monthly_limit,
        currency=row.currency,
        time_unit=row.time_unit,
        alert_threshold=row.alert_threshold,
        alert_frequency=row.alert_frequency,
        services=row.services or [],
        tags=row.tags or {},
        notifications=row.notifications,
        is_active=row.is_active,
        last_alert_sent=_as_utc(row.last_alert_sent),
        last_alert_type=row.last_alert_type,
        total_spent_this_month=row.total_spent_this_month,
        projected_monthly_spend=row.projected_monthly_spend,
    )


class SQLBudgetStore(BudgetStore):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self) -> List[CustomBudgetRecord]:
        result = await self.db.execute(
            select(BudgetSetting)
            .where(BudgetSetting.is_active.is_(True))
            .order_by(BudgetSetting.created_at, BudgetSetting.budget_id)
            .execution_options(populate_existing=True)
        )
        return [_to_record(row) for row in result.scalars().all()]

    async def list_for_user(self, user_id: str) -> List[CustomBudgetRecord]:
        result = await self.db.execute(
            select(BudgetSetting)
            .where(BudgetSetting.user_id == user_id)
            .order_by(BudgetSetting.created_at, BudgetSetting.budget_id)
            .execution_options(populate_existing=True)
        )
        return [_to_record(row) for row in result.scalars().all()]

    async def get(self, user_id: str, budget_id: str) -> Optional[CustomBudgetRecord]:
        # Suppression and snapshot columns are written with bulk UPDATEs
        row = await self.db.get(BudgetSetting, (user_id, budget_id), populate_existing=True)
        return _to_record(row) if row else None

    async def save(self, record: CustomBudgetRecord) -> CustomBudgetRecord:
        """Create or replace a budget's configuration, keeping its suppression state."""
        row = await self.db.get(BudgetSetting, (record.user_id, record.budget_id))
        if row is None:
            row = BudgetSetting(user_id=record.user_id, budget_id=record.budget_id)
            self.db.add(row)

        row.budget_name = record.budget_name or "Default Budget"
        row.monthly_limit = record.monthly_limit or Decimal("0")
        row.currency = record.currency or "USD"
        row.time_unit = record.time_unit or "MONTHLY"
        row.alert_threshold = record.alert_threshold or 80
        row.alert_frequency = record.alert_frequency or "daily"
        row.is_active = record.is_active
        row.services = list(record.services)
        row.tags = dict(record.tags)
        row.notifications = record.notifications or {"email": True}

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise BudgetValidationError(
                "budget_id is already in use", details={"budget_id": record.budget_id}
            ) from e
        await self.db.refresh(row)
        logger.info("budget_saved", user_id=record.user_id, budget_id=record.budget_id)
        return _to_record(row)

    async def delete(self, user_id: str, budget_id: str) -> bool:
        result = await self.db.execute(
            delete(BudgetSetting).where(
                BudgetSetting.user_id == user_id,
                BudgetSetting.budget_id == budget_id,
            )
        )
        await self.db.commit()
        return result.rowcount > 0

    async def get_last_alert_sent(self, budget_id: str) -> Optional[datetime]:
        model = NativeBudgetAlertState if budget_id.startswith(NATIVE_BUDGET_ID_PREFIX) else BudgetSetting
        result = await self.db.execute(
            select(model.last_alert_sent).where(model.budget_id == budget_id)
        )
        return _as_utc(result.scalar_one_or_none())

    async def record_alert_sent(
        self,
        budget_id: str,
        alert_type: AlertType,
        timestamp: datetime,
        expected_last_sent: Optional[datetime] = None,
        conditional: bool = False,
    ) -> bool:
        if budget_id.startswith(NATIVE_BUDGET_ID_PREFIX):
            return await self._record_native_alert_sent(
                budget_id, alert_type, timestamp, expected_last_sent, conditional
            )
        return await self._update_alert_state(
            BudgetSetting, budget_id, alert_type, timestamp, expected_last_sent, conditional
        )

    async def _update_alert_state(
        self,
        model,
        budget_id: str,
        alert_type: AlertType,
        timestamp: datetime,
        expected_last_sent: Optional[datetime],
        conditional: bool,
    ) -> bool:
        stmt = update(model).where(model.budget_id == budget_id)
        if conditional:
            if expected_last_sent is None:
                stmt = stmt.where(model.last_alert_sent.is_(None))
            else:
                stmt = stmt.where(model.last_alert_sent == expected_last_sent)

        result = await self.db.execute(
            stmt.values(last_alert_sent=timestamp, last_alert_type=alert_type.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def _record_native_alert_sent(
        self,
        budget_id: str,
        alert_type: AlertType,
        timestamp: datetime,
        expected_last_sent: Optional[datetime],
        conditional: bool,
    ) -> bool:
        existing = await self.db.get(NativeBudgetAlertState, budget_id)
        if existing is not None:
            return await self._update_alert_state(
                NativeBudgetAlertState, budget_id, alert_type, timestamp, expected_last_sent, conditional
            )

        if conditional and expected_last_sent is not None:
            return False

        self.db.add(NativeBudgetAlertState(
            budget_id=budget_id,
            last_alert_sent=timestamp,
            last_alert_type=alert_type.value,
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            # Another run inserted the state first
            await self.db.rollback()
            return False
        return True

    async def update_spend_snapshot(
        self,
        user_id: str,
        budget_id: str,
        current_spend: Decimal,
        projected_spend: Decimal,
    ) -> None:
        await self.db.execute(
            update(BudgetSetting)
            .where(BudgetSetting.user_id == user_id, BudgetSetting.budget_id == budget_id)
            .values(total_spent_this_month=current_spend, projected_monthly_spend=projected_spend)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()


class SQLUserDirectory(UserDirectory):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> Optional[UserRecord]:
        user = await self.db.get(User, user_id)
        if user is None:
            return None
        return UserRecord(
            user_id=user.user_id,
            email=user.email,
            is_active=user.is_active,
            first_name=user.first_name,
            last_name=user.last_name,
        )
