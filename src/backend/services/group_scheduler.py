"""
Group Scheduler

Runs the recurring actions of every group:
- GroupSchedulerLoop: one (group, cadence) pair, cycling
  COMPUTE_NEXT -> WAITING -> FIRING until cancelled
- SchedulerSupervisor: owns one asyncio task per (group, cadence) and stops
  them all on shutdown

A failing action is logged and retried after a fixed backoff, forever. A
missed instant (process not running) is skipped, never caught up.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional

import structlog

from core.config import settings
from core.exceptions import InvariantViolationError
from services.trigger_calculator import CadenceSpec, next_instant

logger = structlog.get_logger(__name__)

Action = Callable[[], Awaitable[object]]
Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _raise_if_cancelling() -> None:
    # An action may swallow the CancelledError delivered while it was firing
    task = asyncio.current_task()
    if task is not None and task.cancelling():
        raise asyncio.CancelledError()


class Cadence(str, Enum):
    """The two independent recurring actions of a group."""

    CHALLENGE = "challenge"
    REPORT = "report"


class LoopState(str, Enum):
    """Lifecycle state of a scheduler loop."""

    IDLE = "idle"
    COMPUTE_NEXT = "compute_next"
    WAITING = "waiting"
    FIRING = "firing"
    CANCELLED = "cancelled"
    FAILED = "failed"  # Invariant violation ended the loop


@dataclass(frozen=True)
class LoopStatus:
    """Point-in-time view of one loop."""

    group_name: str
    cadence: Cadence
    state: LoopState
    next_fire_at: Optional[datetime]
    fire_count: int
    failure_count: int


class GroupSchedulerLoop:
    """
    Scheduler loop for one group and one cadence.

    Never terminates on an action failure; terminates promptly on task
    cancellation (including cancellation that arrives while firing).
    """

    def __init__(
        self,
        group_name: str,
        cadence: Cadence,
        spec: CadenceSpec,
        action: Action,
        retry_delay: Optional[float] = None,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
    ):
        self.group_name = group_name
        self.cadence = cadence
        self.spec = spec
        self.retry_delay = settings.SCHEDULER_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.state = LoopState.IDLE
        self.next_fire_at: Optional[datetime] = None
        self.fire_count = 0
        self.failure_count = 0

        self._action = action
        self._clock = clock
        self._sleep = sleep
        self._last_target: Optional[datetime] = None
        self._log = logger.bind(group=group_name, cadence=cadence.value)

    async def run(self) -> None:
        """Run until cancelled."""
        try:
            while True:
                delay = self._compute_next()

                self.state = LoopState.WAITING
                await self._sleep(delay)

                self.state = LoopState.FIRING
                self._last_target = self.next_fire_at
                try:
                    await self._action()
                    self.fire_count += 1
                    _raise_if_cancelling()
                except Exception:
                    self.failure_count += 1
                    self._log.exception(
                        "Scheduled action failed, retrying after backoff",
                        retry_delay_seconds=self.retry_delay,
                        failures=self.failure_count,
                    )
                    _raise_if_cancelling()
                    self.state = LoopState.WAITING
                    await self._sleep(self.retry_delay)
        except asyncio.CancelledError:
            self.state = LoopState.CANCELLED
            self._log.info("Scheduler loop cancelled")
            raise

    def _compute_next(self) -> float:
        """Pick the next firing instant and return the delay until it in seconds."""
        self.state = LoopState.COMPUTE_NEXT
        now = self._clock()
        # A wake-up marginally early must not make the same instant fire twice
        reference = now if self._last_target is None else max(now, self._last_target)
        try:
            target = next_instant(reference, self.spec)
        except InvariantViolationError:
            self.state = LoopState.FAILED
            self._log.critical("Cannot compute next firing instant, stopping loop", spec=repr(self.spec))
            raise

        self.next_fire_at = target
        delay = max((target - now).total_seconds(), 0.0)
        self._log.info(
            "Next firing scheduled",
            at=target.astimezone(self.spec.zone).isoformat(),
            delay_seconds=round(delay, 1),
        )
        return delay

    def status(self) -> LoopStatus:
        return LoopStatus(
            group_name=self.group_name,
            cadence=self.cadence,
            state=self.state,
            next_fire_at=self.next_fire_at,
            fire_count=self.fire_count,
            failure_count=self.failure_count,
        )


class SchedulerSupervisor:
    """
    Owns the scheduler loops of all groups.

    Usage:
        supervisor = SchedulerSupervisor()
        supervisor.start("Runners", {
            Cadence.CHALLENGE: (group.schedule.to_cadence(), post_action),
            Cadence.REPORT: (group.report.to_cadence(), report_action),
        })
        ...
        await supervisor.stop_all()
    """

    def __init__(
        self,
        retry_delay: Optional[float] = None,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
    ):
        self._retry_delay = retry_delay
        self._clock = clock
        self._sleep = sleep
        self._loops: dict[tuple[str, Cadence], GroupSchedulerLoop] = {}
        self._tasks: dict[tuple[str, Cadence], asyncio.Task] = {}

    def start(
        self,
        group_name: str,
        cadences: Mapping[Cadence, tuple[CadenceSpec, Action]],
    ) -> list[asyncio.Task]:
        """
        Launch one concurrent loop per cadence of a group.

        Raises:
            ValueError: If a loop for one of the (group, cadence) pairs is already running
        """
        for cadence in cadences:
            task = self._tasks.get((group_name, cadence))
            if task is not None and not task.done():
                raise ValueError(f"Scheduler for '{group_name}' ({cadence.value}) is already running")

        started = []
        for cadence, (spec, action) in cadences.items():
            loop = GroupSchedulerLoop(
                group_name,
                cadence,
                spec,
                action,
                retry_delay=self._retry_delay,
                clock=self._clock,
                sleep=self._sleep,
            )
            task = asyncio.create_task(loop.run(), name=f"scheduler:{group_name}:{cadence.value}")
            task.add_done_callback(self._on_loop_done)
            self._loops[(group_name, cadence)] = loop
            self._tasks[(group_name, cadence)] = task
            started.append(task)

        logger.info(
            "Started scheduling for group",
            group=group_name,
            cadences=[c.value for c in cadences],
        )
        return started

    async def stop_all(self) -> None:
        """Cancel every loop and wait until all of them have finished."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._loops.clear()
        logger.info("Stopped all scheduling", loops=len(tasks))

    def status(self) -> list[LoopStatus]:
        return [loop.status() for loop in self._loops.values()]

    def get_loop(self, group_name: str, cadence: Cadence) -> Optional[GroupSchedulerLoop]:
        return self._loops.get((group_name, cadence))

    @property
    def running(self) -> int:
        """Number of loops whose task has not finished."""
        return sum(1 for task in self._tasks.values() if not task.done())

    @staticmethod
    def _on_loop_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical("Scheduler loop terminated", task=task.get_name(), exc_info=exc)
