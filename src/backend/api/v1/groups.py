"""
Group endpoints.

Read access to every configured group's schedule state and leaderboard, and
manual posting of a challenge or a report outside the schedule.
"""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_runtime
from core.events import BotRuntime
from core.exceptions import DuplicateKeyError, GroupNotFoundError, TelegramAPIError
from core.groups import GroupConfig
from db.session import get_db
from schemas.challenge import (
    CadenceStatus,
    ChallengeRecord,
    GroupSummary,
    PostChallengeRequest,
    ReportResponse,
)
from schemas.statistics import Leaderboard, SortBy
from services.group_scheduler import Cadence
from services.stats_service import StatsService

router = APIRouter()


def _get_group(runtime: BotRuntime, name: str) -> GroupConfig:
    try:
        return runtime.config.get_group(name)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


def _bad_gateway(e: TelegramAPIError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Telegram API error: {e.description}",
    )


@router.get("", response_model=list[GroupSummary])
async def list_groups(
    runtime: Annotated[BotRuntime, Depends(get_runtime)],
) -> list[GroupSummary]:
    """List configured groups with the state of their scheduler loops."""
    summaries = []
    for group in runtime.config.groups:
        cadences = []
        for cadence in Cadence:
            loop = runtime.supervisor.get_loop(group.name, cadence)
            if loop is None:
                continue
            loop_status = loop.status()
            cadences.append(
                CadenceStatus(
                    cadence=cadence.value,
                    state=loop_status.state.value,
                    next_fire_at=loop_status.next_fire_at,
                    fire_count=loop_status.fire_count,
                    failure_count=loop_status.failure_count,
                )
            )
        summaries.append(
            GroupSummary(
                name=group.name,
                chat_id=group.chat_id,
                thread_id=group.thread_id,
                schedule_frequency=group.schedule.frequency.value,
                report_frequency=group.report.frequency.value,
                cadences=cadences,
            )
        )
    return summaries


@router.get("/{name}/statistics", response_model=Leaderboard)
async def get_group_statistics(
    name: str,
    runtime: Annotated[BotRuntime, Depends(get_runtime)],
    db: AsyncSession = Depends(get_db),
    sort_by: Optional[SortBy] = Query(None, description="Defaults to the group's report sort order"),
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
) -> Leaderboard:
    """Get a group's leaderboard, optionally restricted to challenges posted in [from, to]."""
    group = _get_group(runtime, name)
    for label, value in (("from", from_), ("to", to)):
        if value is not None and value.tzinfo is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"'{label}' must include a timezone offset",
            )

    service = StatsService(db)
    return await service.get_leaderboard(
        group.name,
        sort_by=sort_by or group.report.sort_by,
        from_=from_,
        to=to,
    )


@router.post("/{name}/challenges", response_model=ChallengeRecord, status_code=status.HTTP_201_CREATED)
async def post_group_challenge(
    name: str,
    runtime: Annotated[BotRuntime, Depends(get_runtime)],
    payload: Optional[PostChallengeRequest] = None,
) -> ChallengeRecord:
    """Post a challenge to the group now."""
    group = _get_group(runtime, name)
    question = payload.question if payload else None
    try:
        return await runtime.service.post_challenge(group, question_text=question)
    except TelegramAPIError as e:
        raise _bad_gateway(e) from e
    except DuplicateKeyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.post("/{name}/reports", response_model=ReportResponse)
async def post_group_report(
    name: str,
    runtime: Annotated[BotRuntime, Depends(get_runtime)],
) -> ReportResponse:
    """Post the group's leaderboard now."""
    group = _get_group(runtime, name)
    try:
        return await runtime.service.send_report(group)
    except TelegramAPIError as e:
        raise _bad_gateway(e) from e
