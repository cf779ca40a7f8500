"""
Alert Processor - Budget Alert Pipeline Orchestrator

Runs one pass of aggregate-all -> evaluate-all -> dispatch-all.

Usage:
    processor = AlertProcessor(aggregator, engine, dispatcher, user_directory, budget_store)
    summary = await processor.run_scheduled()
"""

import time
from decimal import Decimal
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from costguard.modules.budgets.domain.aggregator import BudgetAggregator
from costguard.modules.budgets.domain.alert_engine import AlertEngine
from costguard.modules.budgets.domain.models import (
    NATIVE_BUDGET_ID_PREFIX,
    Alert,
    AlertType,
    BudgetStatus,
    BudgetType,
    Channel,
    NormalizedBudget,
    NotificationResult,
    Severity,
)
from costguard.modules.budgets.domain.ports import BudgetStore, UserDirectory
from costguard.modules.notifications.domain.dispatcher import NotificationDispatcher
from costguard.shared.core.exceptions import BudgetValidationError, ResourceNotFoundError
from costguard.shared.core.ops_metrics import (
    ALERT_RUN_DURATION_SECONDS,
    ALERT_RUNS_TOTAL,
    ALERTS_TRIGGERED_TOTAL,
    BUDGETS_DEGRADED_TOTAL,
    BUDGETS_PROCESSED_TOTAL,
)

logger = structlog.get_logger()

MODE_SCHEDULED = "scheduled"
MODE_MANUAL = "manual"


class ManualRunRequest(BaseModel):
    budget_id: Optional[str] = None
    force_alert: bool = False
    test_mode: bool = False


class AlertDelivery(BaseModel):
    """Outcome of dispatching one alert."""
    budget_id: str
    budget_name: str
    alert_type: AlertType
    severity: Severity
    status: str  # sent | failed
    channels: Dict[Channel, NotificationResult] = Field(default_factory=dict)
    error: Optional[str] = None


class BudgetCheck(BaseModel):
    budget_id: str
    budget_name: str
    current_utilization: Decimal
    current_spend: Decimal
    budget_limit: Decimal
    threshold: int
    status: BudgetStatus
    degraded: bool = False
    alert_triggered: bool = False


class RunSummary(BaseModel):
    mode: str
    budgets_processed: int = 0
    budgets_degraded: int = 0
    alerts_triggered: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    processing_time_ms: int = 0
    test_mode: bool = False
    force_alert: bool = False
    alerts: List[Alert] = Field(default_factory=list)
    notifications: Optional[List[AlertDelivery]] = None  # None in test mode
    budgets: List[BudgetCheck] = Field(default_factory=list)


class AlertProcessor:
    def __init__(
        self,
        aggregator: BudgetAggregator,
        engine: AlertEngine,
        dispatcher: NotificationDispatcher,
        user_directory: UserDirectory,
        budget_store: BudgetStore,
    ):
        self.aggregator = aggregator
        self.engine = engine
        self.dispatcher = dispatcher
        self.user_directory = user_directory
        self.budget_store = budget_store

    async def run_scheduled(self) -> RunSummary:
        """System-wide pass over every active budget."""
        return await self._run(MODE_SCHEDULED)

    async def run_manual(self, request: ManualRunRequest, requesting_user_id: str) -> RunSummary:
        """
        User-triggered pass over the requester's budgets.

        Raises:
            BudgetValidationError: budget_id given but empty.
            ResourceNotFoundError: budget_id does not belong to the requester.
                Both are raised before any aggregation work.
        """
        if request.budget_id is not None:
            await self._authorize_budget(request.budget_id, requesting_user_id)

        return await self._run(
            MODE_MANUAL,
            owner_user_id=requesting_user_id,
            budget_id=request.budget_id,
            force_alert=request.force_alert,
            test_mode=request.test_mode,
        )

    async def _authorize_budget(self, budget_id: str, requesting_user_id: str) -> None:
        if not budget_id.strip():
            raise BudgetValidationError("budget_id must not be empty")

        if budget_id.startswith(NATIVE_BUDGET_ID_PREFIX):
            owned = (
                self.aggregator.native_source is not None
                and self.aggregator.native_owner_user_id == requesting_user_id
            )
        else:
            owned = await self.budget_store.get(requesting_user_id, budget_id) is not None

        if not owned:
            logger.info("manual_run_budget_not_found", budget_id=budget_id, user_id=requesting_user_id)
            raise ResourceNotFoundError(
                "Budget not found or you do not have permission to access it",
                details={"budget_id": budget_id},
            )

    async def _run(
        self,
        mode: str,
        owner_user_id: Optional[str] = None,
        budget_id: Optional[str] = None,
        force_alert: bool = False,
        test_mode: bool = False,
    ) -> RunSummary:
        started = time.perf_counter()
        summary = RunSummary(mode=mode, force_alert=force_alert, test_mode=test_mode)
        logger.info(
            "alert_run_started",
            mode=mode,
            owner_user_id=owner_user_id,
            budget_id=budget_id,
            force_alert=force_alert,
            test_mode=test_mode,
        )

        try:
            budgets = await self.aggregator.aggregate_all_budgets(
                owner_user_id=owner_user_id,
                budget_id=budget_id,
            )
            summary.budgets_processed = len(budgets)
            summary.budgets_degraded = sum(1 for b in budgets if b.utilization and b.utilization.degraded)

            if mode == MODE_SCHEDULED:
                await self._store_spend_snapshots(budgets)

            alerts = await self.engine.check_thresholds(budgets, force_alert=force_alert)
        except Exception as e:
            summary.processing_time_ms = self._elapsed_ms(started)
            self._record_run_metrics(summary, "failure")
            logger.error("alert_run_failed", mode=mode, error=str(e), processing_time_ms=summary.processing_time_ms)
            raise

        summary.alerts = alerts
        summary.alerts_triggered = len(alerts)

        for alert in alerts:
            await self._attach_user_email(alert)

        if not test_mode:
            summary.notifications = [await self._deliver(alert) for alert in alerts]
            summary.notifications_sent = sum(1 for d in summary.notifications if d.status == "sent")
            summary.notifications_failed = len(summary.notifications) - summary.notifications_sent
        else:
            logger.info("alert_run_test_mode", alerts=len(alerts))

        if mode == MODE_MANUAL:
            alerted = {a.budget_id for a in alerts}
            summary.budgets = [self._budget_check(b, b.id in alerted) for b in budgets]

        summary.processing_time_ms = self._elapsed_ms(started)
        self._record_run_metrics(summary, "success")
        logger.info(
            "alert_run_completed",
            mode=mode,
            budgets_processed=summary.budgets_processed,
            budgets_degraded=summary.budgets_degraded,
            alerts_triggered=summary.alerts_triggered,
            notifications_sent=summary.notifications_sent,
            notifications_failed=summary.notifications_failed,
            processing_time_ms=summary.processing_time_ms,
        )
        return summary

    async def _attach_user_email(self, alert: Alert) -> None:
        if not alert.user_id:
            return
        try:
            user = await self.user_directory.get_by_id(alert.user_id)
        except Exception as e:
            logger.warning("alert_user_lookup_failed", budget_id=alert.budget_id, error=str(e))
            return
        if user is not None and user.is_active and user.email:
            alert.user_email = user.email

    async def _deliver(self, alert: Alert) -> AlertDelivery:
        delivery = AlertDelivery(
            budget_id=alert.budget_id,
            budget_name=alert.budget_name,
            alert_type=alert.alert_type,
            severity=alert.severity,
            status="sent",
        )
        try:
            delivery.channels = await self.dispatcher.send_alert(alert)
        except Exception as e:
            logger.error("alert_dispatch_failed", budget_id=alert.budget_id, error=str(e))
            delivery.status = "failed"
            delivery.error = str(e)
            return delivery

        external = [r for c, r in delivery.channels.items() if c != Channel.CONSOLE and r.attempted]
        if external and not any(r.success for r in external):
            delivery.status = "failed"
            delivery.error = "; ".join(f"{r.channel.value}: {r.error}" for r in external)
        return delivery

    async def _store_spend_snapshots(self, budgets: List[NormalizedBudget]) -> None:
        for budget in budgets:
            u = budget.utilization
            if budget.type != BudgetType.CUSTOM or u is None or u.degraded:
                continue
            try:
                await self.budget_store.update_spend_snapshot(
                    budget.owner_user_id, budget.id, u.current_spend, u.projected_spend
                )
            except Exception as e:
                logger.warning("spend_snapshot_failed", budget_id=budget.id, error=str(e))

    @staticmethod
    def _budget_check(budget: NormalizedBudget, alert_triggered: bool) -> BudgetCheck:
        u = budget.utilization
        return BudgetCheck(
            budget_id=budget.id,
            budget_name=budget.name,
            current_utilization=u.utilization if u else Decimal("0"),
            current_spend=u.current_spend if u else Decimal("0"),
            budget_limit=budget.limit,
            threshold=budget.alert_threshold,
            status=u.status if u else BudgetStatus.ON_TRACK,
            degraded=u.degraded if u else False,
            alert_triggered=alert_triggered,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    @staticmethod
    def _record_run_metrics(summary: RunSummary, status: str) -> None:
        try:
            ALERT_RUNS_TOTAL.labels(mode=summary.mode, status=status).inc()
            ALERT_RUN_DURATION_SECONDS.labels(mode=summary.mode).observe(summary.processing_time_ms / 1000)
            BUDGETS_PROCESSED_TOTAL.labels(mode=summary.mode).inc(summary.budgets_processed)
            BUDGETS_DEGRADED_TOTAL.inc(summary.budgets_degraded)
            for alert in summary.alerts:
                ALERTS_TRIGGERED_TOTAL.labels(
                    alert_type=alert.alert_type.value,
                    severity=alert.severity.value,
                ).inc()
        except Exception as e:
            logger.debug("alert_run_metrics_failed", error=str(e))
