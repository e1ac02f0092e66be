"""
Shared dependencies for API endpoints.
"""

from fastapi import HTTPException, Request, status

from core.events import BotRuntime


def get_runtime(request: Request) -> BotRuntime:
    """
    Get the running bot from application state.

    Raises:
        HTTPException: 503 while the bot is not started
    """
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bot is not running",
        )
    return runtime
