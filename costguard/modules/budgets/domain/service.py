"""
Budget Service

CRUD over a user's budget settings. Input is validated here, before anything
reaches the store, so the HTTP layer and any other caller share one rule set.
"""

import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, Field, ValidationError

from costguard.modules.budgets.domain.models import (
    NATIVE_BUDGET_ID_PREFIX,
    CustomBudgetRecord,
    NotificationConfig,
    TimeUnit,
)
from costguard.modules.budgets.domain.persistence import SQLBudgetStore
from costguard.shared.adapters.base import NativeBudgetSource
from costguard.shared.core.exceptions import BudgetValidationError, ResourceNotFoundError

logger = structlog.get_logger()

ALERT_FREQUENCIES = ("immediate", "daily", "weekly")


class BudgetInput(BaseModel):
    """Unvalidated budget payload; range checks happen in BudgetService."""
    budget_id: Optional[str] = None
    budget_name: Optional[str] = None
    monthly_limit: Optional[Decimal] = None
    currency: str = "USD"
    time_unit: str = TimeUnit.MONTHLY.value
    alert_threshold: int = 80
    alert_frequency: str = "daily"
    is_active: bool = True
    services: List[str] = Field(default_factory=list)
    tags: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    notifications: Optional[Dict[str, Any]] = None


def validate_budget_input(data: BudgetInput) -> None:
    errors: Dict[str, str] = {}

    if data.monthly_limit is None or data.monthly_limit <= 0:
        errors["monthly_limit"] = "must be greater than 0"
    if not 1 <= data.alert_threshold <= 100:
        errors["alert_threshold"] = "must be between 1 and 100"
    if data.time_unit.upper() not in TimeUnit.__members__:
        errors["time_unit"] = f"must be one of {', '.join(TimeUnit.__members__)}"
    if data.alert_frequency not in ALERT_FREQUENCIES:
        errors["alert_frequency"] = f"must be one of {', '.join(ALERT_FREQUENCIES)}"
    if len(data.currency) != 3:
        errors["currency"] = "must be a 3-letter currency code"
    if data.budget_id is not None and not data.budget_id.strip():
        errors["budget_id"] = "must not be empty"
    elif data.budget_id is not None and data.budget_id.startswith(NATIVE_BUDGET_ID_PREFIX):
        errors["budget_id"] = f"must not start with {NATIVE_BUDGET_ID_PREFIX}"
    if data.notifications is not None:
        try:
            NotificationConfig.from_record(data.notifications)
        except ValidationError as e:
            errors["notifications"] = "; ".join(err["msg"] for err in e.errors())

    if errors:
        raise BudgetValidationError("Invalid budget settings", details=errors)


class BudgetService:
    def __init__(
        self,
        store: SQLBudgetStore,
        native_source: Optional[NativeBudgetSource] = None,
        native_owner_user_id: Optional[str] = None,
    ):
        self.store = store
        self.native_source = native_source
        self.native_owner_user_id = native_owner_user_id

    async def set_budget(self, user_id: str, data: BudgetInput) -> CustomBudgetRecord:
        """Create a budget, or replace an existing one when budget_id is given."""
        validate_budget_input(data)

        record = CustomBudgetRecord(
            user_id=user_id,
            budget_id=data.budget_id or str(uuid.uuid4()),
            budget_name=data.budget_name or "Default Budget",
            monthly_limit=data.monthly_limit,
            currency=data.currency.upper(),
            time_unit=data.time_unit.upper(),
            alert_threshold=data.alert_threshold,
            alert_frequency=data.alert_frequency,
            services=data.services,
            tags=data.tags,
            notifications=data.notifications or {"email": True},
            is_active=data.is_active,
        )
        saved = await self.store.save(record)
        logger.info("budget_set", user_id=user_id, budget_id=saved.budget_id)
        return saved

    async def get_user_budgets(self, user_id: str) -> List[CustomBudgetRecord]:
        return await self.store.list_for_user(user_id)

    async def get_budget(self, user_id: str, budget_id: str) -> CustomBudgetRecord:
        record = await self.store.get(user_id, budget_id)
        if record is None:
            raise ResourceNotFoundError("Budget not found", details={"budget_id": budget_id})
        return record

    async def delete_budget(self, user_id: str, budget_id: str) -> None:
        if not await self.store.delete(user_id, budget_id):
            raise ResourceNotFoundError("Budget not found", details={"budget_id": budget_id})
        logger.info("budget_deleted", user_id=user_id, budget_id=budget_id)

    async def get_budget_history(self, user_id: str, budget_id: str, months: int = 12) -> List[Dict[str, object]]:
        """
        Budgeted vs actual amounts per past period for a provider-native budget.

        Only the configured native budget owner can read them. User-defined
        budgets keep no period history, only the current spend snapshot.

        Raises:
            BudgetValidationError: budget_id is not a provider-native budget, or months is out of range.
            ResourceNotFoundError: native budgets are disabled or the caller is not their owner.
        """
        if not budget_id.startswith(NATIVE_BUDGET_ID_PREFIX):
            raise BudgetValidationError(
                "History is only available for provider-native budgets",
                details={"budget_id": budget_id},
            )
        if not 1 <= months <= 36:
            raise BudgetValidationError("Invalid history range", details={"months": "must be between 1 and 36"})
        if self.native_source is None or self.native_owner_user_id != user_id:
            raise ResourceNotFoundError("Budget not found", details={"budget_id": budget_id})

        budget_name = budget_id[len(NATIVE_BUDGET_ID_PREFIX):]
        history = await self.native_source.get_performance_history(budget_name, months=months)
        logger.info("budget_history_fetched", budget_id=budget_id, periods=len(history))
        return history
