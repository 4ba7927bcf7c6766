"""
In-process job scheduler.

Each due job is handed to the agent as a direct prompt on its own
"cron:<name>" session. When a store path is given, jobs and their last
run status survive restarts in a JSON file (normally
{workspace}/cron/jobs.json).
"""

import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from croniter import croniter
from pydantic import TypeAdapter

from superbot.bus.events import OutboundMessage
from superbot.cron.types import CronExecutionResult, CronJob, ScheduleType

if TYPE_CHECKING:
    from superbot.agent.loop import AgentLoop
    from superbot.bus.queue import MessageBus

logger = logging.getLogger(__name__)

_JOBS_ADAPTER = TypeAdapter(list[CronJob])


def _parse_at(value: str) -> datetime | None:
    """ISO timestamp as naive local time; offsets (and "Z") are converted."""
    try:
        when = datetime.fromisoformat(value)
    except ValueError:
        return None
    if when.tzinfo is not None:
        when = when.astimezone().replace(tzinfo=None)
    return when


def next_fire_time(schedule_type: str, value: str, after: datetime) -> datetime | None:
    """
    When a schedule fires next, strictly after `after` (naive local time).

    Returns None for malformed values and for one-shot times already past.
    """
    if schedule_type == "at":
        when = _parse_at(value)
        return when if when is not None and when > after else None

    if schedule_type == "every":
        try:
            seconds = int(value)
        except ValueError:
            return None
        return after + timedelta(seconds=seconds) if seconds > 0 else None

    if schedule_type == "cron" and croniter.is_valid(value):
        return croniter(value, after).get_next(datetime)

    return None


class CronService:
    """
    Polls its jobs every `interval_s` seconds and runs the due ones.

    Supported schedules: "at" (ISO datetime, fires once), "every"
    (seconds) and "cron" (five-field expression). A job created with
    `deliver` and a target chat has its result published to that chat.
    """

    def __init__(
        self,
        agent: "AgentLoop | None" = None,
        bus: "MessageBus | None" = None,
        interval_s: int = 60,
        store_path: Path | None = None,
    ):
        self.agent = agent
        self.bus = bus
        self.interval_s = interval_s
        self.store_path = Path(store_path) if store_path else None
        self.jobs: dict[str, CronJob] = {}
        self._task: asyncio.Task[None] | None = None
        self._load()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _load(self) -> None:
        if self.store_path is None or not self.store_path.exists():
            return
        try:
            jobs = _JOBS_ADAPTER.validate_json(self.store_path.read_bytes())
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load cron jobs from {self.store_path}: {e}")
            return
        self.jobs = {job.name: job for job in jobs}
        logger.info(f"Loaded {len(self.jobs)} cron job(s) from {self.store_path}")

    def _save(self) -> None:
        if self.store_path is None:
            return
        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        self.store_path.write_bytes(_JOBS_ADAPTER.dump_json(list(self.jobs.values()), indent=2))

    async def add_job(
        self,
        name: str,
        message: str,
        schedule_type: ScheduleType,
        schedule_value: str,
        deliver: bool = False,
        channel: str | None = None,
        chat_id: str | None = None,
    ) -> CronJob:
        """
        Create or replace the job called `name`.

        Raises:
            ValueError: The schedule would never fire.
        """
        first_run = next_fire_time(schedule_type, schedule_value, datetime.now())
        if first_run is None:
            raise ValueError(f"Invalid or expired schedule: {schedule_type} {schedule_value!r}")

        job = CronJob(
            name=name,
            message=message,
            schedule_type=schedule_type,
            schedule_value=schedule_value,
            deliver=deliver,
            channel=channel,
            chat_id=chat_id,
            next_run_at=first_run,
        )
        self.jobs[name] = job
        self._save()
        logger.info(f"Cron job '{name}' scheduled for {first_run}")
        return job

    async def remove_job(self, name: str) -> bool:
        removed = self.jobs.pop(name, None) is not None
        if removed:
            self._save()
            logger.info(f"Cron job '{name}' removed")
        return removed

    async def enable_job(self, name: str, enabled: bool = True) -> bool:
        """
        Switch a job on or off. Returns False for unknown names.

        Raises:
            ValueError: Re-enabling a job whose schedule can no longer fire.
        """
        job = self.jobs.get(name)
        if job is None:
            return False

        if enabled:
            next_run = next_fire_time(job.schedule_type, job.schedule_value, datetime.now())
            if next_run is None:
                raise ValueError(f"Job '{name}' has no future run time")
            job.next_run_at = next_run
        job.enabled = enabled
        self._save()
        logger.info(f"Cron job '{name}' {'enabled' if enabled else 'disabled'}")
        return True

    def list_jobs(self, include_disabled: bool = False) -> list[CronJob]:
        """Jobs, soonest first. Disabled ones only when asked for."""
        jobs = [job for job in self.jobs.values() if include_disabled or job.enabled]
        return sorted(jobs, key=lambda job: job.next_run_at or datetime.max)

    async def _execute_job(self, job: CronJob) -> CronExecutionResult:
        if self.agent is None:
            return CronExecutionResult(job.name, False, error="No agent configured")

        try:
            output = await self.agent.process_direct(job.message, session_key=f"cron:{job.name}")
        except Exception as e:
            logger.exception(f"Cron job '{job.name}' failed")
            return CronExecutionResult(job.name, False, error=str(e))

        if job.deliver and job.channel and job.chat_id and self.bus is not None:
            self.bus.publish_outbound(OutboundMessage(channel=job.channel, chat_id=job.chat_id, content=output))

        return CronExecutionResult(job.name, True, result=output)

    async def _tick(self) -> list[CronExecutionResult]:
        """Run every job that is due now."""
        now = datetime.now()
        due = [j for j in list(self.jobs.values()) if j.enabled and j.next_run_at and j.next_run_at <= now]

        results = []
        for job in due:
            logger.info(f"Cron: running job '{job.name}'")
            result = await self._execute_job(job)
            results.append(result)

            job.last_run_at = result.finished_at
            job.last_status = "ok" if result.success else "error"
            job.last_error = result.error
            if job.schedule_type == "at":
                job.enabled = False
            job.next_run_at = next_fire_time(job.schedule_type, job.schedule_value, datetime.now())

        if due:
            self._save()
        return results

    async def _run_loop(self) -> None:
        while True:
            try:
                await self._tick()
            except Exception:
                logger.exception("Cron tick failed")
            await asyncio.sleep(self.interval_s)

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Cron service started (checking every {self.interval_s}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
