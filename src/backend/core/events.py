"""
Application lifecycle event handlers.

Startup loads the group configuration, opens the database, runs startup
migrations and starts every group's scheduler loops plus the update listener.
Shutdown stops them and releases the Telegram client and database.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog
from fastapi import FastAPI

from core.config import settings
from core.exceptions import ConfigurationError
from core.groups import AppConfig, load_app_config
from core.log_config import configure_logging
from db.session import close_db, init_db
from services.challenge_service import ChallengeService
from services.group_scheduler import Cadence, SchedulerSupervisor
from services.migration_service import run_migrations
from services.telegram_client import TelegramClient
from services.update_listener import UpdateListener

logger = structlog.get_logger(__name__)


@dataclass
class BotRuntime:
    """Everything the running bot owns, stored on app.state.runtime."""

    config: AppConfig
    client: TelegramClient
    service: ChallengeService
    supervisor: SchedulerSupervisor
    listener: UpdateListener
    listener_task: Optional[asyncio.Task] = field(default=None)


def resolve_bot_token(app_config: AppConfig) -> str:
    """BOT_TOKEN from the environment wins over botToken in the group file."""
    token = settings.BOT_TOKEN or app_config.bot_token
    if not token:
        raise ConfigurationError("Bot token is not set (BOT_TOKEN or botToken in the configuration file)")
    return token


def resolve_database_url(app_config: AppConfig) -> str:
    """DATABASE_URL wins, then databasePath from the group file, then DATABASE_PATH."""
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    if app_config.database_path:
        return f"sqlite+aiosqlite:///{app_config.database_path}"
    return settings.database_url


def start_group_schedulers(runtime: BotRuntime) -> None:
    """Start the challenge and report loops of every configured group."""
    for group in runtime.config.groups:
        runtime.supervisor.start(
            group.name,
            {
                Cadence.CHALLENGE: (group.schedule.to_cadence(), runtime.service.challenge_action(group)),
                Cadence.REPORT: (group.report.to_cadence(), runtime.service.report_action(group)),
            },
        )


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        configure_logging()
        logger.info("Starting challenge bot...", env=settings.APP_ENV)

        app_config = load_app_config(settings.CONFIG_PATH)
        token = resolve_bot_token(app_config)
        logger.info("Group configuration loaded", groups=app_config.group_names)

        session_maker = await init_db(resolve_database_url(app_config))
        await run_migrations(session_maker, app_config)

        client = TelegramClient(token)
        service = ChallengeService(session_maker, client)
        runtime = BotRuntime(
            config=app_config,
            client=client,
            service=service,
            supervisor=SchedulerSupervisor(),
            listener=UpdateListener(client, service.handle_poll_answer),
        )
        app.state.runtime = runtime

        if settings.ENABLE_SCHEDULER:
            start_group_schedulers(runtime)
        else:
            logger.warning("Scheduler disabled; challenges and reports are only posted manually")

        if settings.ENABLE_UPDATE_LISTENER:
            runtime.listener_task = runtime.listener.start()
        else:
            logger.warning("Update listener disabled; poll answers are not recorded")

        logger.info("Challenge bot started successfully")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("Shutting down challenge bot...")

        runtime: Optional[BotRuntime] = getattr(app.state, "runtime", None)
        if runtime is not None:
            if runtime.listener_task is not None:
                runtime.listener_task.cancel()
                await asyncio.gather(runtime.listener_task, return_exceptions=True)
                runtime.listener_task = None

            await runtime.supervisor.stop_all()
            await runtime.client.close()
            app.state.runtime = None

        await close_db()
        logger.info("Challenge bot shutdown complete")

    return stop_app
