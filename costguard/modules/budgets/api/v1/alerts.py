"""
Manual Alert Trigger API
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from costguard.modules.budgets.domain.processor import AlertProcessor, ManualRunRequest, RunSummary
from costguard.shared.core.auth import CurrentUser, get_current_user
from costguard.shared.core.dependencies import get_alert_processor

logger = structlog.get_logger()
router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.post("/trigger", response_model=RunSummary)
async def trigger_alerts(
    request: ManualRunRequest,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    processor: Annotated[AlertProcessor, Depends(get_alert_processor)],
):
    """
    Run an alert check over the caller's budgets.

    - budget_id: restrict the check to one budget (404 if not the caller's)
    - force_alert: alert regardless of threshold and the 24h cooldown
    - test_mode: evaluate and report without sending notifications
    """
    logger.info(
        "manual_alert_trigger_requested",
        user_id=user.user_id,
        budget_id=request.budget_id,
        force_alert=request.force_alert,
        test_mode=request.test_mode,
    )
    return await processor.run_manual(request, requesting_user_id=user.user_id)
