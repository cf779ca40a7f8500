"""
Budget Settings Model for CostGuard.
Stores user-defined budgets, their suppression state and spend snapshots.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Integer, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from costguard.shared.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BudgetSetting(Base):
    """A user-defined spending cap."""

    __tablename__ = "budget_settings"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    budget_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True, unique=True)

    budget_name: Mapped[str] = mapped_column(String(255), default="Default Budget")
    monthly_limit: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    time_unit: Mapped[str] = mapped_column(String(16), default="MONTHLY")
    alert_threshold: Mapped[int] = mapped_column(Integer, default=80)
    alert_frequency: Mapped[str] = mapped_column(String(16), default="daily")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Filters: services is a list of short names, tags maps key -> value or list of values
    services: Mapped[list[str]] = mapped_column(JSON, default=list)
    tags: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    # {"email": bool | str, "sns": bool, "slack": bool, "webhookUrl": str | None}
    notifications: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    # Suppression state, written only by the alert engine
    last_alert_sent: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_alert_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Spend snapshot for the current period
    total_spent_this_month: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    projected_monthly_spend: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<BudgetSetting {self.budget_id} user={self.user_id} limit={self.monthly_limit}>"


class NativeBudgetAlertState(Base):
    """Suppression state for provider-native budgets, which have no budget_settings row."""

    __tablename__ = "native_budget_alert_states"

    budget_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    last_alert_sent: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_alert_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
