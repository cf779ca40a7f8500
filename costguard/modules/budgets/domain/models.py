"""
Budget Domain Models - Normalization Layer

Budgets arrive from two sources with different shapes: user-defined budgets
from the budget store and provider-native budgets from AWS Budgets. Both are
captured as a tagged union at the ingestion boundary and converted once into
NormalizedBudget, the only shape the alert pipeline works with.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

NATIVE_BUDGET_ID_PREFIX = "aws-native:"


class BudgetType(str, Enum):
    CUSTOM = "CUSTOM"
    AWS_NATIVE = "AWS_NATIVE"


class TimeUnit(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"


class BudgetStatus(str, Enum):
    ON_TRACK = "ON_TRACK"
    WARNING = "WARNING"
    EXCEEDED = "EXCEEDED"


class AlertType(str, Enum):
    THRESHOLD_REACHED = "THRESHOLD_REACHED"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class Channel(str, Enum):
    EMAIL = "email"
    PUBSUB = "pubsub"
    CHAT = "chat"
    CONSOLE = "console"


class NotificationConfig(BaseModel):
    """Channels configured on a budget."""
    email: bool = True
    email_address: Optional[str] = None  # Per-budget override recipient
    pubsub: bool = False
    chat: bool = False
    webhook_url: Optional[str] = None

    @classmethod
    def from_record(cls, raw: Optional[Dict[str, Any]]) -> "NotificationConfig":
        """
        Parse the stored notification settings.

        The store keeps {"email": bool | address, "sns": bool, "slack": bool,
        "webhookUrl": str}. A string email value both enables the channel and
        overrides the recipient. A missing email key defaults to enabled.
        """
        if not raw:
            return cls()

        email = raw.get("email", True)
        email_address = email if isinstance(email, str) and email else None

        return cls(
            email=bool(email),
            email_address=email_address,
            pubsub=bool(raw.get("sns", raw.get("pubsub", False))),
            chat=bool(raw.get("slack", raw.get("chat", False))),
            webhook_url=raw.get("webhookUrl") or raw.get("webhook_url"),
        )


# ============================================================
# Ingestion boundary (tagged union)
# ============================================================

class CustomBudgetRecord(BaseModel):
    """A user-defined budget as persisted in the budget store."""
    source: Literal["custom"] = "custom"
    user_id: str
    budget_id: str
    budget_name: Optional[str] = None
    monthly_limit: Optional[Decimal] = None
    currency: Optional[str] = None
    time_unit: Optional[str] = None
    alert_threshold: Optional[int] = None
    alert_frequency: Optional[str] = None
    services: List[str] = Field(default_factory=list)
    tags: Dict[str, Any] = Field(default_factory=dict)
    notifications: Optional[Dict[str, Any]] = None
    is_active: bool = True
    last_alert_sent: Optional[datetime] = None
    last_alert_type: Optional[str] = None
    total_spent_this_month: Optional[Decimal] = None
    projected_monthly_spend: Optional[Decimal] = None


class NativeBudgetRecord(BaseModel):
    """A provider-native budget as returned by AWS Budgets DescribeBudgets."""
    source: Literal["aws_native"] = "aws_native"
    budget_name: str
    limit_amount: Decimal = Decimal("0")
    limit_unit: str = "USD"
    time_unit: str = "MONTHLY"
    budget_type: str = "COST"
    cost_filters: Dict[str, List[str]] = Field(default_factory=dict)
    actual_spend: Optional[Decimal] = None
    forecasted_spend: Optional[Decimal] = None


BudgetRecord = Annotated[
    Union[CustomBudgetRecord, NativeBudgetRecord],
    Field(discriminator="source"),
]


# ============================================================
# Canonical model
# ============================================================

class Utilization(BaseModel):
    """Derived spend metrics for one budget in one aggregation pass."""
    current_spend: Decimal = Decimal("0")
    limit: Decimal = Decimal("0")
    utilization: Decimal = Decimal("0")
    remaining_budget: Decimal = Decimal("0")
    status: BudgetStatus = BudgetStatus.ON_TRACK
    projected_spend: Decimal = Decimal("0")
    days_remaining: int = 0
    degraded: bool = False  # Spend query failed, zero substituted


class NormalizedBudget(BaseModel):
    id: str
    name: str
    type: BudgetType
    limit: Decimal = Field(Decimal("0"), ge=0)
    currency: str = "USD"
    time_unit: TimeUnit = TimeUnit.MONTHLY
    services: List[str] = Field(default_factory=list)
    tags: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    alert_threshold: int = Field(80, ge=1, le=100)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    owner_user_id: Optional[str] = None
    utilization: Optional[Utilization] = None


class Alert(BaseModel):
    """An evaluation decision. Transient: only its suppression timestamp is persisted."""
    budget_id: str
    budget_name: str
    budget_type: BudgetType
    alert_type: AlertType
    threshold: int
    current_utilization: Decimal
    current_spend: Decimal
    budget_limit: Decimal
    remaining_budget: Decimal
    currency: str
    severity: Severity
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    services: List[str] = Field(default_factory=list)
    tags: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    user_id: Optional[str] = None
    user_email: Optional[str] = None  # Attached by the processor when resolvable
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationResult(BaseModel):
    channel: Channel
    attempted: bool = False
    success: bool = False
    error: Optional[str] = None
