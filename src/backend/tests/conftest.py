"""
Pytest fixtures for challenge bot tests.
"""

import os
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("BOT_TOKEN", "123456:test-token")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_RETRY_DELAY_SECONDS", "60")

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
async def app() -> Any:
    """Create FastAPI application for testing (lifespan is not run)."""
    from main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()
    fastapi_app.state.runtime = None


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def session_maker() -> AsyncGenerator[Any, None]:
    """Fresh in-memory SQLite database with all tables created."""
    from db.session import close_db, init_db

    maker = await init_db(TEST_DATABASE_URL)
    yield maker
    await close_db()


@pytest.fixture
async def db_session(session_maker: Any) -> AsyncGenerator[Any, None]:
    """Real database session on the in-memory database."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def mock_telegram_client() -> MagicMock:
    """Telegram client whose calls succeed."""
    from services.telegram_client import PostedPoll

    client = MagicMock()
    client.send_poll = AsyncMock(return_value=PostedPoll(poll_id="poll-1", message_id=101))
    client.send_message = AsyncMock(return_value=202)
    client.get_updates = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def sample_group_data() -> dict[str, Any]:
    """Group configuration as written in config.yaml (camelCase keys)."""
    return {
        "chatId": -1001234567890,
        "threadId": 42,
        "name": "Runners",
        "challenge": {
            "questionTemplate": "Пробежка {date}: выполнено?",
            "options": [
                {"text": "Да", "points": 10, "countsAsCompleted": True},
                {"text": "Частично", "points": 5, "countsAsCompleted": False},
                {"text": "Нет", "points": 0, "countsAsCompleted": False},
            ],
            "isAnonymous": False,
            "allowsMultipleAnswers": False,
        },
        "schedule": {
            "frequency": "DAILY",
            "time": "09:00",
            "timezone": "Europe/Moscow",
        },
        "report": {
            "frequency": "WEEKLY",
            "dayOfWeek": "SUNDAY",
            "time": "20:00",
            "timezone": "Europe/Moscow",
        },
    }


@pytest.fixture
def group_config(sample_group_data: dict[str, Any]) -> Any:
    """Validated GroupConfig for the sample group."""
    from core.groups import GroupConfig

    return GroupConfig.model_validate(sample_group_data)


@pytest.fixture
def app_config(group_config: Any) -> Any:
    """AppConfig holding the sample group."""
    from core.groups import AppConfig

    return AppConfig(groups=[group_config])
