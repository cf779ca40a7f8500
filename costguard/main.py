from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from costguard.modules.budgets.api.v1.alerts import router as alerts_router
from costguard.modules.budgets.api.v1.budgets import router as budgets_router
from costguard.modules.budgets.domain.scheduler import AlertScheduler
from costguard.shared.core.config import Settings, get_settings
from costguard.shared.core.dependencies import build_alert_processor
from costguard.shared.core.exceptions import ConfigurationError, CostGuardException
from costguard.shared.core.logging import setup_logging
from costguard.shared.db.session import async_session_maker

setup_logging()
logger = structlog.get_logger()


def check_runtime_config(settings: Settings) -> None:
    """
    Startup checks that need logging configured first.

    Raises:
        ConfigurationError: the scheduler minute is not a valid cron minute.
    """
    if settings.ALERT_SCHEDULER_ENABLED and not 0 <= settings.ALERT_SCHEDULER_MINUTE <= 59:
        raise ConfigurationError(
            "ALERT_SCHEDULER_MINUTE must be between 0 and 59",
            details={"ALERT_SCHEDULER_MINUTE": settings.ALERT_SCHEDULER_MINUTE},
        )

    if settings.NATIVE_BUDGETS_ENABLED and not settings.NATIVE_BUDGET_OWNER_USER_ID:
        logger.warning(
            "native_budgets_without_owner",
            msg="Native budget alerts will fall back to DEFAULT_ALERT_EMAIL",
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("app_starting", app=settings.APP_NAME, environment=settings.ENVIRONMENT)
    check_runtime_config(settings)

    scheduler = None
    if settings.ALERT_SCHEDULER_ENABLED and not settings.TESTING:
        scheduler = AlertScheduler(
            session_maker=async_session_maker,
            processor_factory=build_alert_processor,
            minute=settings.ALERT_SCHEDULER_MINUTE,
        )
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    logger.info("app_stopping", app=settings.APP_NAME)
    if scheduler is not None:
        scheduler.stop()


settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)

Instrumentator().instrument(app).expose(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CostGuardException)
async def costguard_exception_handler(request: Request, exc: CostGuardException):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message, "details": exc.details},
        headers={"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None,
    )


app.include_router(budgets_router, prefix="/api/v1")
app.include_router(alerts_router, prefix="/api/v1")


@app.get("/health")
async def health_check(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "active",
        "app": settings.APP_NAME,
        "version": settings.VERSION,
        "scheduler": scheduler.get_status() if scheduler else {"running": False},
    }
