import pytest
from pydantic import ValidationError

from costguard.shared.core.config import Settings


def test_production_rejects_short_jwt_secret():
    with pytest.raises(ValidationError, match="JWT_SECRET_KEY"):
        Settings(ENVIRONMENT="production", TESTING=False, JWT_SECRET_KEY="short")


def test_production_accepts_strong_secret():
    settings = Settings(ENVIRONMENT="production", TESTING=False, JWT_SECRET_KEY="x" * 32)
    assert settings.is_production


def test_testing_bypasses_security_checks():
    settings = Settings(ENVIRONMENT="production", TESTING=True, JWT_SECRET_KEY="short")
    assert settings.JWT_SECRET_KEY == "short"


def test_defaults():
    settings = Settings()
    assert settings.ALERT_SCHEDULER_MINUTE == 0
    assert settings.NATIVE_BUDGET_ALERT_THRESHOLD == 80
    assert settings.DATABASE_URL.startswith("sqlite+aiosqlite")
