from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from costguard.modules.budgets.domain.models import AlertType, CustomBudgetRecord


class UserRecord(BaseModel):
    user_id: str
    email: Optional[str] = None
    is_active: bool = True
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class BudgetStore(ABC):
    """
    Persistence for user-defined budgets.

    Records are keyed by (user_id, budget_id). The suppression fields are
    written only by the alert engine.
    """

    @abstractmethod
    async def list_active(self) -> List[CustomBudgetRecord]:
        """All budgets whose active flag is set, in storage order."""

    @abstractmethod
    async def get(self, user_id: str, budget_id: str) -> Optional[CustomBudgetRecord]:
        """One budget, or None when it does not exist for this user."""

    @abstractmethod
    async def get_last_alert_sent(self, budget_id: str) -> Optional[datetime]:
        """Timestamp of the last alert recorded for the budget, if any."""

    @abstractmethod
    async def record_alert_sent(
        self,
        budget_id: str,
        alert_type: AlertType,
        timestamp: datetime,
        expected_last_sent: Optional[datetime] = None,
        conditional: bool = False,
    ) -> bool:
        """
        Persist the suppression timestamp.

        With conditional=True the write only applies if the stored
        last_alert_sent still equals expected_last_sent (compare-and-swap).
        Returns False when that condition no longer holds.
        """

    @abstractmethod
    async def update_spend_snapshot(
        self,
        user_id: str,
        budget_id: str,
        current_spend: Decimal,
        projected_spend: Decimal,
    ) -> None:
        """Store the current-period spend snapshot shown on the dashboard."""


class UserDirectory(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[UserRecord]:
        """Resolve a user by ID, or None when unknown."""
