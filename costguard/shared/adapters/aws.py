"""
AWS Cost Explorer Adapter (Native Async)

Fetches blended cost for a date range through aioboto3, applying the
budget's service and tag filters server-side.
"""

from datetime import date
from decimal import Decimal
from functools import wraps
from typing import Any, Dict, List, Optional, Union

import aioboto3
import structlog
import tenacity
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, ConnectTimeoutError, EndpointConnectionError, ReadTimeoutError

from costguard.shared.adapters.base import CostBucket, CostSeries, CostSource
from costguard.shared.core.config import get_settings
from costguard.shared.core.exceptions import AdapterError

logger = structlog.get_logger()

# Short names used in the dashboard -> Cost Explorer SERVICE dimension values
SERVICE_NAME_MAP = {
    "EC2": "Amazon Elastic Compute Cloud - Compute",
    "S3": "Amazon Simple Storage Service",
    "Lambda": "AWS Lambda",
    "RDS": "Amazon Relational Database Service",
    "DynamoDB": "Amazon DynamoDB",
    "CloudFront": "Amazon CloudFront",
    "API Gateway": "Amazon API Gateway",
}

COST_METRIC = "BlendedCost"

# Safety limit for NextPageToken loops
MAX_COST_EXPLORER_PAGES = 100


def with_aws_retry(func):
    """Exponential backoff retry for transient AWS connection failures."""
    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)),
        wait=tenacity.wait_exponential(multiplier=1, min=2, max=10),
        stop=tenacity.stop_after_attempt(3),
        reraise=True,
    )
    @wraps(func)
    async def wrapper(*args, **kwargs):
        return await func(*args, **kwargs)
    return wrapper


def build_boto_config() -> BotoConfig:
    settings = get_settings()
    return BotoConfig(
        connect_timeout=settings.AWS_CONNECT_TIMEOUT_SECONDS,
        read_timeout=settings.AWS_READ_TIMEOUT_SECONDS,
        retries={"max_attempts": 3, "mode": "adaptive"},
    )


def build_cost_filter(
    services: Optional[List[str]] = None,
    tags: Optional[Dict[str, Union[str, List[str]]]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Build a Cost Explorer filter expression.

    One SERVICE dimension filter for all services, one Tags filter per key
    (values within a key are ORed). Several filters are ANDed, a single one
    is used unwrapped and no filter at all returns None.
    """
    filters: List[Dict[str, Any]] = []

    if services:
        filters.append({
            "Dimensions": {
                "Key": "SERVICE",
                "Values": [SERVICE_NAME_MAP.get(s, s) for s in services],
            }
        })

    for key, value in (tags or {}).items():
        values = value if isinstance(value, list) else [value]
        filters.append({"Tags": {"Key": key, "Values": [str(v) for v in values]}})

    if not filters:
        return None
    if len(filters) == 1:
        return filters[0]
    return {"And": filters}


class AWSCostExplorerAdapter(CostSource):
    def __init__(self, session: Optional[aioboto3.Session] = None):
        self.settings = get_settings()
        self.session = session or aioboto3.Session()

    def _client(self):
        return self.session.client(
            "ce",
            region_name=self.settings.AWS_DEFAULT_REGION,
            endpoint_url=self.settings.AWS_ENDPOINT_URL,
            aws_access_key_id=self.settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=self.settings.AWS_SECRET_ACCESS_KEY,
            config=build_boto_config(),
        )

    @with_aws_retry
    async def get_spend(
        self,
        start_date: date,
        end_date: date,
        granularity: str = "MONTHLY",
        service_filter: Optional[List[str]] = None,
        tag_filter: Optional[Dict[str, Union[str, List[str]]]] = None,
        group_by_service: bool = False,
    ) -> CostSeries:
        request: Dict[str, Any] = {
            "TimePeriod": {"Start": start_date.isoformat(), "End": end_date.isoformat()},
            "Granularity": granularity,
            "Metrics": [COST_METRIC],
        }
        cost_filter = build_cost_filter(service_filter, tag_filter)
        if cost_filter:
            request["Filter"] = cost_filter
        if group_by_service:
            request["GroupBy"] = [{"Type": "DIMENSION", "Key": "SERVICE"}]

        results: List[Dict[str, Any]] = []
        try:
            async with self._client() as client:
                next_token = None
                for _ in range(MAX_COST_EXPLORER_PAGES):
                    if next_token:
                        request["NextPageToken"] = next_token
                    response = await client.get_cost_and_usage(**request)
                    results.extend(response.get("ResultsByTime", []))
                    next_token = response.get("NextPageToken")
                    if not next_token:
                        break
                else:
                    logger.warning("cost_explorer_page_limit_reached", pages=MAX_COST_EXPLORER_PAGES)
        except ClientError as e:
            raise AdapterError(
                message=f"AWS Cost Explorer fetch failed: {e}",
                code=e.response.get("Error", {}).get("Code", "Unknown"),
                details={"start": start_date.isoformat(), "end": end_date.isoformat()},
            ) from e

        logger.debug(
            "cost_explorer_fetched",
            start=start_date.isoformat(),
            end=end_date.isoformat(),
            periods=len(results),
            filtered=cost_filter is not None,
        )
        return CostSeries(
            start_date=start_date,
            end_date=end_date,
            granularity=granularity,
            buckets=[self._parse_result(r) for r in results],
        )

    @staticmethod
    def _parse_result(result: Dict[str, Any]) -> CostBucket:
        period = result.get("TimePeriod", {})
        by_service: Dict[str, Decimal] = {}
        currency = "USD"

        for group in result.get("Groups", []):
            keys = group.get("Keys") or []
            metric = group.get("Metrics", {}).get(COST_METRIC, {})
            if keys:
                by_service[keys[0]] = Decimal(metric.get("Amount", "0"))
                currency = metric.get("Unit", currency)

        total_metric = result.get("Total", {}).get(COST_METRIC)
        if total_metric:
            amount = Decimal(total_metric.get("Amount", "0"))
            currency = total_metric.get("Unit", currency)
        else:
            # Grouped responses leave Total empty
            amount = sum(by_service.values(), Decimal("0"))

        return CostBucket(
            start_date=date.fromisoformat(period["Start"]),
            end_date=date.fromisoformat(period["End"]),
            amount=amount,
            currency=currency,
            estimated=result.get("Estimated", False),
            by_service=by_service,
        )
