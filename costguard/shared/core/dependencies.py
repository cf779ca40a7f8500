"""
Composition root for the alert pipeline.

Settings are read here, once per construction, and handed to components as
plain constructor arguments.
"""

from typing import Optional

import aioboto3
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from costguard.modules.budgets.domain.aggregator import BudgetAggregator
from costguard.modules.budgets.domain.alert_engine import AlertEngine
from costguard.modules.budgets.domain.persistence import SQLBudgetStore, SQLUserDirectory
from costguard.modules.budgets.domain.processor import AlertProcessor
from costguard.modules.budgets.domain.service import BudgetService
from costguard.modules.notifications.domain.dispatcher import NotificationDispatcher
from costguard.modules.notifications.domain.transport import AWSNotificationTransport
from costguard.shared.adapters.aws import AWSCostExplorerAdapter
from costguard.shared.adapters.aws_budgets import AWSBudgetsAdapter
from costguard.shared.core.config import Settings, get_settings
from costguard.shared.db.session import get_db


def build_alert_processor(
    db: AsyncSession,
    settings: Optional[Settings] = None,
    session: Optional[aioboto3.Session] = None,
) -> AlertProcessor:
    settings = settings or get_settings()
    session = session or aioboto3.Session()

    store = SQLBudgetStore(db)
    native_source = AWSBudgetsAdapter(session) if settings.NATIVE_BUDGETS_ENABLED else None

    aggregator = BudgetAggregator(
        budget_store=store,
        cost_source=AWSCostExplorerAdapter(session),
        native_source=native_source,
        native_owner_user_id=settings.NATIVE_BUDGET_OWNER_USER_ID,
        native_alert_threshold=settings.NATIVE_BUDGET_ALERT_THRESHOLD,
    )
    dispatcher = NotificationDispatcher(
        transport=AWSNotificationTransport(session),
        sns_topic_arn=settings.ALERT_SNS_TOPIC_ARN,
        default_email=settings.DEFAULT_ALERT_EMAIL,
    )
    return AlertProcessor(
        aggregator=aggregator,
        engine=AlertEngine(store),
        dispatcher=dispatcher,
        user_directory=SQLUserDirectory(db),
        budget_store=store,
    )


def get_alert_processor(db: AsyncSession = Depends(get_db)) -> AlertProcessor:
    return build_alert_processor(db)


def get_budget_service(db: AsyncSession = Depends(get_db)) -> BudgetService:
    settings = get_settings()
    native_source = AWSBudgetsAdapter(aioboto3.Session()) if settings.NATIVE_BUDGETS_ENABLED else None
    return BudgetService(
        SQLBudgetStore(db),
        native_source=native_source,
        native_owner_user_id=settings.NATIVE_BUDGET_OWNER_USER_ID,
    )
