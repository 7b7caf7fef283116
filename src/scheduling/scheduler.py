"""
Timer Scheduler

Named, independently controllable timers on top of APScheduler.

Architecture:
    Scheduler (Public API)
        ├── TimerDefinition (name, cron expression or interval, async task)
        └── AsyncIOScheduler (APScheduler, runs tasks on the worker's event loop)

Architectural Decision: an explicit timer registry instead of module-level cron jobs
- Timers are declared by the composition root, never at import time
- Each timer can be paused, resumed or fired on demand by name
- A timer task that raises is logged and the timer keeps firing; enqueueing
  work is the task's job, retries belong to the queues

Author: System Architect
Date: 2025-12-17
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config.constants import Stage
from src.core.exceptions import SchedulerError, UnknownTimerError
from src.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

TimerTask = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class TimerDefinition:
    """
    One named timer.

    Exactly one of ``cron`` (5-field crontab) or ``interval_seconds`` must be set.
    """

    name: str
    task: TimerTask
    cron: str | None = None
    interval_seconds: float | None = None
    description: str = ""

    def __post_init__(self):
        if (self.cron is None) == (self.interval_seconds is None):
            raise SchedulerError(
                f"Timer {self.name} needs exactly one of cron or interval_seconds",
                details={"timer": self.name},
            )

    @property
    def schedule(self) -> str:
        return self.cron if self.cron is not None else f"every {self.interval_seconds}s"

    def build_trigger(self, timezone: str) -> BaseTrigger:
        if self.cron is not None:
            return CronTrigger.from_crontab(self.cron, timezone=timezone)
        return IntervalTrigger(seconds=self.interval_seconds, timezone=timezone)


class Scheduler:
    """
    Usage:
        scheduler = Scheduler(timezone="UTC")
        scheduler.add_timer(TimerDefinition("erp-stock-delta", enqueue_delta, cron="*/2 * * * *"))
        scheduler.start()
        await scheduler.trigger_now("erp-stock-delta")
    """

    def __init__(self, timezone: str = "UTC", scheduler: AsyncIOScheduler | None = None):
        self.timezone = timezone
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        self._timers: dict[str, TimerDefinition] = {}
        self._stopped: set[str] = set()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def add_timer(self, timer: TimerDefinition) -> None:
        if timer.name in self._timers:
            logger.warning("Replacing timer", stage=Stage.SCHEDULER.value, timer=timer.name)
        self._timers[timer.name] = timer
        if self.running:
            self._schedule(timer)

    def add_timers(self, timers: list[TimerDefinition]) -> None:
        for timer in timers:
            self.add_timer(timer)

    def _get(self, name: str) -> TimerDefinition:
        try:
            return self._timers[name]
        except KeyError:
            raise UnknownTimerError(
                f"Unknown timer {name}", details={"timer": name, "known": sorted(self._timers)}
            ) from None

    def _schedule(self, timer: TimerDefinition) -> None:
        self._scheduler.add_job(
            self._run_timer,
            timer.build_trigger(self.timezone),
            args=[timer.name],
            id=timer.name,
            name=timer.description or timer.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if timer.name in self._stopped:
            self._scheduler.pause_job(timer.name)

    async def _run_timer(self, name: str) -> None:
        timer = self._timers.get(name)
        if timer is None:
            return
        try:
            await timer.task()
        except Exception as e:
            logger.error(
                "Timer task failed",
                stage=Stage.SCHEDULER.value,
                timer=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        log_stage(logger, "S.2", "Timer fired", level="debug", timer=name)

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            logger.warning("Timer run missed", stage=Stage.SCHEDULER.value, timer=event.job_id)
        elif event.exception is not None:
            logger.error(
                "Timer job crashed", stage=Stage.SCHEDULER.value, timer=event.job_id, error=str(event.exception)
            )

    def start(self) -> None:
        """STAGE-S.1: Schedule every timer and start the scheduler (needs a running loop)."""
        if self.running:
            return
        for timer in self._timers.values():
            self._schedule(timer)
        self._scheduler.start()
        logger.info("Scheduler started", stage=Stage.SCHEDULER.value, timers=len(self._timers))

    def stop(self) -> None:
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped", stage=Stage.SCHEDULER.value)

    def start_timer(self, name: str) -> None:
        """Resume a stopped timer."""
        self._get(name)
        self._stopped.discard(name)
        if self.running and self._scheduler.get_job(name) is not None:
            self._scheduler.resume_job(name)
        logger.info("Timer started", stage=Stage.SCHEDULER.value, timer=name)

    def stop_timer(self, name: str) -> None:
        """Pause a timer without removing it."""
        self._get(name)
        self._stopped.add(name)
        if self.running and self._scheduler.get_job(name) is not None:
            self._scheduler.pause_job(name)
        logger.info("Timer stopped", stage=Stage.SCHEDULER.value, timer=name)

    async def trigger_now(self, name: str) -> Any:
        """Run a timer's task immediately; errors propagate to the caller."""
        timer = self._get(name)
        logger.info("Timer triggered manually", stage=Stage.SCHEDULER.value, timer=name)
        return await timer.task()

    def get_status(self) -> dict[str, Any]:
        timers = []
        for name, timer in self._timers.items():
            job = self._scheduler.get_job(name) if self.running else None
            next_run = getattr(job, "next_run_time", None) if job is not None else None
            timers.append({
                "name": name,
                "description": timer.description,
                "schedule": timer.schedule,
                "active": self.running and name not in self._stopped,
                "next_run": next_run.isoformat() if next_run else None,
            })
        return {"running": self.running, "timer_count": len(self._timers), "timers": timers}
