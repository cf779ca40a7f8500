from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from costguard.modules.budgets.domain.models import NativeBudgetRecord


class CostBucket(BaseModel):
    """Spend for one time bucket. end_date is exclusive."""
    start_date: date
    end_date: date
    amount: Decimal = Decimal("0")
    currency: str = "USD"
    estimated: bool = False
    by_service: Dict[str, Decimal] = Field(default_factory=dict)


class CostSeries(BaseModel):
    """Time-bucketed spend returned by a cost source."""
    start_date: date
    end_date: date
    granularity: str
    buckets: List[CostBucket] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((b.amount for b in self.buckets), Decimal("0"))


class CostSource(ABC):
    """
    Abstract Base Class for billing-API spend queries.

    Implementations own their retry and timeout policy.
    """

    @abstractmethod
    async def get_spend(
        self,
        start_date: date,
        end_date: date,
        granularity: str = "MONTHLY",
        service_filter: Optional[List[str]] = None,
        tag_filter: Optional[Dict[str, Union[str, List[str]]]] = None,
        group_by_service: bool = False,
    ) -> CostSeries:
        """
        Fetch blended cost between start_date (inclusive) and end_date (exclusive).

        Service filters and each tag key are ANDed together; multiple values
        for one tag key are ORed.
        """


class NativeBudgetSource(ABC):
    """Provider-native budget definitions (e.g. AWS Budgets)."""

    @abstractmethod
    async def list_budgets(self) -> List[NativeBudgetRecord]:
        """Return all provider budget definitions."""

    @abstractmethod
    async def get_performance_history(self, budget_name: str, months: int = 12) -> List[Dict[str, object]]:
        """Return budgeted vs actual amounts per past period for one budget."""