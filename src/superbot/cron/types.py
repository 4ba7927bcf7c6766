"""
Cron job records.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

ScheduleType = Literal["at", "every", "cron"]
RunStatus = Literal["ok", "error"]


@dataclass
class CronJob:
    """
    One scheduled prompt.

    `schedule_value` is read according to `schedule_type`: an ISO
    timestamp for "at", a number of seconds for "every", a crontab line
    for "cron". `channel`/`chat_id` name the conversation that receives
    the output when `deliver` is set. The `last_*` fields describe the
    most recent run.
    """

    name: str
    message: str
    schedule_type: ScheduleType
    schedule_value: str
    deliver: bool = False
    channel: str | None = None
    chat_id: str | None = None
    enabled: bool = True
    next_run_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)
    last_run_at: datetime | None = None
    last_status: RunStatus | None = None
    last_error: str | None = None


@dataclass
class CronExecutionResult:
    """Outcome of running one job."""

    job_name: str
    success: bool
    result: str | None = None
    error: str | None = None
    finished_at: datetime = field(default_factory=datetime.now)
