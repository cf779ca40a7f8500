import os
# Settings are read at import time by the session module
os.environ["ENVIRONMENT"] = "development"
os.environ["TESTING"] = "True"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-0123456789"
os.environ["ALERT_SCHEDULER_ENABLED"] = "False"

import pytest

from tests.fakes import InMemoryBudgetStore, RecordingTransport


@pytest.fixture
def budget_store() -> InMemoryBudgetStore:
    return InMemoryBudgetStore()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
