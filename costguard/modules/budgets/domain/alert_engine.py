"""
Alert Engine

Decides which budgets need an alert in this pass.

Per budget: {never alerted} -> threshold crossed -> {alerted, cooling down 24h}
-> 24h elapsed and still over threshold -> {alerted again}. The cooldown
keeps hourly runs from re-notifying a budget parked above its threshold.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, NamedTuple, Optional

import structlog

from costguard.modules.budgets.domain.models import (
    Alert,
    AlertType,
    NormalizedBudget,
    Severity,
)
from costguard.modules.budgets.domain.ports import BudgetStore

logger = structlog.get_logger()

SUPPRESSION_WINDOW = timedelta(hours=24)
HIGH_SEVERITY_MARGIN = 15
MEDIUM_SEVERITY_MARGIN = 5


class SuppressionCheck(NamedTuple):
    allowed: bool
    last_sent: Optional[datetime]
    verified: bool  # False when the store could not be read


def get_alert_severity(utilization: Decimal, threshold: int) -> Severity:
    if utilization >= 100:
        return Severity.CRITICAL
    if utilization >= threshold + HIGH_SEVERITY_MARGIN:
        return Severity.HIGH
    if utilization >= threshold + MEDIUM_SEVERITY_MARGIN:
        return Severity.MEDIUM
    if utilization >= threshold:
        return Severity.LOW
    return Severity.INFO


class AlertEngine:
    def __init__(self, budget_store: BudgetStore):
        self.budget_store = budget_store

    async def check_thresholds(self, budgets: List[NormalizedBudget], force_alert: bool = False) -> List[Alert]:
        """
        Evaluate every budget and return the alerts to dispatch.

        Suppressed budgets are simply absent from the result. A failure while
        evaluating one budget is logged and does not affect the others.
        """
        logger.info("threshold_check_started", budgets=len(budgets), force_alert=force_alert)

        alerts: List[Alert] = []
        for budget in budgets:
            try:
                alerts.extend(await self.evaluate_budget_alerts(budget, force_alert))
            except Exception as e:
                logger.error("budget_alert_evaluation_failed", budget_id=budget.id, error=str(e))

        logger.info("threshold_check_completed", alerts=len(alerts))
        return alerts

    async def evaluate_budget_alerts(self, budget: NormalizedBudget, force_alert: bool = False) -> List[Alert]:
        if budget.utilization is None:
            logger.info("budget_alert_skipped_no_utilization", budget_id=budget.id)
            return []

        utilization = budget.utilization.utilization
        threshold = budget.alert_threshold

        if utilization < threshold and not force_alert:
            logger.debug("budget_within_threshold", budget_id=budget.id, utilization=str(utilization))
            return []

        alert_type = AlertType.BUDGET_EXCEEDED if utilization >= 100 else AlertType.THRESHOLD_REACHED

        check = None
        if not force_alert:
            check = await self.should_send_alert(budget.id)
            if not check.allowed:
                logger.info("budget_alert_suppressed", budget_id=budget.id, last_sent=check.last_sent.isoformat())
                return []

        now = datetime.now(timezone.utc)
        alert = Alert(
            budget_id=budget.id,
            budget_name=budget.name,
            budget_type=budget.type,
            alert_type=alert_type,
            threshold=threshold,
            current_utilization=utilization,
            current_spend=budget.utilization.current_spend,
            budget_limit=budget.limit,
            remaining_budget=budget.utilization.remaining_budget,
            currency=budget.currency,
            severity=get_alert_severity(utilization, threshold),
            notifications=budget.notifications,
            services=list(budget.services),
            tags=dict(budget.tags),
            user_id=budget.owner_user_id,
            timestamp=now,
        )

        # Persist before emitting; forced alerts never touch suppression state
        if check is not None and not await self.record_alert_sent(budget.id, alert_type, now, check):
            return []

        logger.info(
            "budget_alert_created",
            budget_id=budget.id,
            alert_type=alert_type.value,
            severity=alert.severity.value,
            utilization=str(utilization),
            forced=force_alert,
        )
        return [alert]

    async def should_send_alert(self, budget_id: str) -> SuppressionCheck:
        """
        Apply the fixed 24h cooldown.

        Fails open: if the store cannot be read the alert is allowed, so a
        transient store error never hides a real breach.
        """
        try:
            last_sent = await self.budget_store.get_last_alert_sent(budget_id)
        except Exception as e:
            logger.warning("alert_history_check_failed", budget_id=budget_id, error=str(e))
            return SuppressionCheck(allowed=True, last_sent=None, verified=False)

        if last_sent is None:
            return SuppressionCheck(allowed=True, last_sent=None, verified=True)

        elapsed = datetime.now(timezone.utc) - last_sent
        return SuppressionCheck(allowed=elapsed >= SUPPRESSION_WINDOW, last_sent=last_sent, verified=True)

    async def record_alert_sent(
        self,
        budget_id: str,
        alert_type: AlertType,
        timestamp: datetime,
        check: SuppressionCheck,
    ) -> bool:
        """
        Write the suppression timestamp.

        When the previous value was read, the write is conditional on it being
        unchanged; losing that race means another run already alerted, so the
        alert is dropped. A failed write is logged and the alert still goes out.
        """
        try:
            written = await self.budget_store.record_alert_sent(
                budget_id,
                alert_type,
                timestamp,
                expected_last_sent=check.last_sent,
                conditional=check.verified,
            )
        except Exception as e:
            logger.error("alert_record_failed", budget_id=budget_id, error=str(e))
            return True

        if not written:
            logger.info("budget_alert_claimed_by_concurrent_run", budget_id=budget_id)
        return written
