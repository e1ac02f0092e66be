"""
Common utilities for backend scripts.

Import this module at the top of any script so the backend packages resolve
when the script is run directly (python scripts/foo.py) instead of as a
module (python -m scripts.foo).

Usage:
    from scripts._common import open_service
"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

BACKEND_ROOT = Path(__file__).parent.parent
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from core.config import settings  # noqa: E402
from core.events import resolve_bot_token, resolve_database_url  # noqa: E402
from core.groups import AppConfig, load_app_config  # noqa: E402
from core.log_config import configure_logging  # noqa: E402
from db.session import close_db, init_db  # noqa: E402
from services.challenge_service import ChallengeService  # noqa: E402
from services.telegram_client import TelegramClient  # noqa: E402


@asynccontextmanager
async def open_service(config_path: Optional[str] = None) -> AsyncIterator[tuple[AppConfig, ChallengeService]]:
    """Load the group configuration and open the database and Telegram client for one-off work."""
    configure_logging()
    app_config = load_app_config(config_path or settings.CONFIG_PATH)
    session_maker = await init_db(resolve_database_url(app_config))
    try:
        async with TelegramClient(resolve_bot_token(app_config)) as client:
            yield app_config, ChallengeService(session_maker, client)
    finally:
        await close_db()
