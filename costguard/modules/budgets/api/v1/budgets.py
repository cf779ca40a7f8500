"""
Budget Settings API

Create, list, read and delete the caller's budgets.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict

from costguard.modules.budgets.domain.models import CustomBudgetRecord
from costguard.modules.budgets.domain.service import BudgetInput, BudgetService
from costguard.shared.core.auth import CurrentUser, get_current_user
from costguard.shared.core.dependencies import get_budget_service

logger = structlog.get_logger()
router = APIRouter(prefix="/budgets", tags=["Budgets"])


class BudgetResponse(BaseModel):
    budget_id: str
    budget_name: Optional[str]
    monthly_limit: Optional[Decimal]
    currency: Optional[str]
    time_unit: Optional[str]
    alert_threshold: Optional[int]
    alert_frequency: Optional[str]
    is_active: bool
    services: List[str]
    tags: Dict[str, Any]
    notifications: Optional[Dict[str, Any]]
    last_alert_sent: Optional[datetime]
    total_spent_this_month: Optional[Decimal]
    projected_monthly_spend: Optional[Decimal]

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record: CustomBudgetRecord) -> "BudgetResponse":
        return cls.model_validate(record.model_dump())


@router.get("", response_model=List[BudgetResponse])
async def list_budgets(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[BudgetService, Depends(get_budget_service)],
):
    records = await service.get_user_budgets(user.user_id)
    return [BudgetResponse.from_record(r) for r in records]


@router.post("", response_model=BudgetResponse, status_code=status.HTTP_201_CREATED)
async def set_budget(
    data: BudgetInput,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[BudgetService, Depends(get_budget_service)],
):
    """
    Create a budget, or replace one of the caller's budgets when budget_id is set.

    Suppression state and spend snapshots survive a replace.
    """
    record = await service.set_budget(user.user_id, data)
    return BudgetResponse.from_record(record)


@router.get("/{budget_id}", response_model=BudgetResponse)
async def get_budget(
    budget_id: str,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[BudgetService, Depends(get_budget_service)],
):
    record = await service.get_budget(user.user_id, budget_id)
    return BudgetResponse.from_record(record)


@router.delete("/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_budget(
    budget_id: str,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[BudgetService, Depends(get_budget_service)],
):
    await service.delete_budget(user.user_id, budget_id)


class BudgetPeriodResponse(BaseModel):
    period_start: Optional[str]
    budgeted: Decimal
    actual: Decimal


@router.get("/{budget_id}/history", response_model=List[BudgetPeriodResponse])
async def get_budget_history(
    budget_id: str,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[BudgetService, Depends(get_budget_service)],
    months: Annotated[int, Query()] = 12,
):
    """Budgeted vs actual spend per past period of a provider-native budget."""
    return await service.get_budget_history(user.user_id, budget_id, months=months)
