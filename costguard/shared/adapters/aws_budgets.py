"""
AWS Budgets Adapter

Lists provider-native budgets and their performance history so they can be
evaluated alongside user-defined budgets.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aioboto3
import structlog
from botocore.exceptions import ClientError

from costguard.modules.budgets.domain.models import NativeBudgetRecord
from costguard.shared.adapters.aws import build_boto_config, with_aws_retry
from costguard.shared.adapters.base import NativeBudgetSource
from costguard.shared.core.config import get_settings
from costguard.shared.core.exceptions import AdapterError

logger = structlog.get_logger()


def _amount(spend: Optional[Dict[str, Any]]) -> Optional[Decimal]:
    if not spend or "Amount" not in spend:
        return None
    return Decimal(str(spend["Amount"]))


class AWSBudgetsAdapter(NativeBudgetSource):
    def __init__(self, session: Optional[aioboto3.Session] = None):
        self.settings = get_settings()
        self.session = session or aioboto3.Session()
        self._account_id: Optional[str] = self.settings.AWS_ACCOUNT_ID

    def _client(self, service: str):
        return self.session.client(
            service,
            region_name=self.settings.AWS_DEFAULT_REGION,
            endpoint_url=self.settings.AWS_ENDPOINT_URL,
            aws_access_key_id=self.settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=self.settings.AWS_SECRET_ACCESS_KEY,
            config=build_boto_config(),
        )

    async def get_account_id(self) -> str:
        """Resolve the AWS account ID from config, falling back to STS."""
        if self._account_id:
            return self._account_id
        try:
            async with self._client("sts") as sts:
                identity = await sts.get_caller_identity()
        except ClientError as e:
            raise AdapterError(f"Failed to resolve AWS account ID: {e}") from e
        self._account_id = identity["Account"]
        return self._account_id

    @with_aws_retry
    async def list_budgets(self) -> List[NativeBudgetRecord]:
        account_id = await self.get_account_id()
        raw_budgets: List[Dict[str, Any]] = []
        try:
            async with self._client("budgets") as client:
                request: Dict[str, Any] = {"AccountId": account_id, "MaxResults": 100}
                while True:
                    response = await client.describe_budgets(**request)
                    raw_budgets.extend(response.get("Budgets", []))
                    next_token = response.get("NextToken")
                    if not next_token:
                        break
                    request["NextToken"] = next_token
        except ClientError as e:
            raise AdapterError(
                message=f"AWS Budgets fetch failed: {e}",
                code=e.response.get("Error", {}).get("Code", "Unknown"),
            ) from e

        logger.info("aws_native_budgets_fetched", count=len(raw_budgets))
        return [self._parse_budget(b) for b in raw_budgets]

    @staticmethod
    def _parse_budget(raw: Dict[str, Any]) -> NativeBudgetRecord:
        limit = raw.get("BudgetLimit") or {}
        spend = raw.get("CalculatedSpend") or {}
        return NativeBudgetRecord(
            budget_name=raw["BudgetName"],
            limit_amount=Decimal(str(limit.get("Amount", "0"))),
            limit_unit=limit.get("Unit", "USD"),
            time_unit=raw.get("TimeUnit", "MONTHLY"),
            budget_type=raw.get("BudgetType", "COST"),
            cost_filters=raw.get("CostFilters") or {},
            actual_spend=_amount(spend.get("ActualSpend")),
            forecasted_spend=_amount(spend.get("ForecastedSpend")),
        )

    @with_aws_retry
    async def get_performance_history(self, budget_name: str, months: int = 12) -> List[Dict[str, object]]:
        """Budgeted vs actual amounts for the last `months` periods, oldest first."""
        account_id = await self.get_account_id()
        today = date.today()
        start_month = today.month - (months - 1)
        start_year = today.year
        while start_month <= 0:
            start_month += 12
            start_year -= 1

        history: List[Dict[str, object]] = []
        try:
            async with self._client("budgets") as client:
                response = await client.describe_budget_performance_history(
                    AccountId=account_id,
                    BudgetName=budget_name,
                    TimePeriod={
                        "Start": datetime(start_year, start_month, 1, tzinfo=timezone.utc),
                        "End": datetime.now(timezone.utc),
                    },
                )
        except ClientError as e:
            raise AdapterError(
                message=f"AWS Budgets history fetch failed: {e}",
                code=e.response.get("Error", {}).get("Code", "Unknown"),
            ) from e

        performance = response.get("BudgetPerformanceHistory", {})
        for item in performance.get("BudgetedAndActualAmountsList", []):
            period = item.get("TimePeriod", {})
            start = period.get("Start")
            history.append({
                "period_start": start.date().isoformat() if isinstance(start, datetime) else start,
                "budgeted": _amount(item.get("BudgetedAmount")) or Decimal("0"),
                "actual": _amount(item.get("ActualAmount")) or Decimal("0"),
            })
        return history
