"""
Domain models for scheduled execution.
Each class follows the Single Responsibility Principle (SRP).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


# Sentinel for "never" (weekly task without weekdays, invalid interval).
NEVER = datetime.max


class ScheduleType(Enum):
    """Enumeration of supported schedule kinds."""
    DAILY = "daily"
    WEEKLY = "weekly"
    INTERVAL = "interval"


class NotificationPolicy(Enum):
    """Which run outcomes trigger a notification."""
    ON_ERROR = "on_error"
    ON_SUCCESS = "on_success"
    ALWAYS = "always"


class Weekday(Enum):
    """Values match ``datetime.weekday()``."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def short_name(self) -> str:
        return self.name[:3].capitalize()


@dataclass
class ExecutionRecord:
    """
    Outcome of one scheduled run.

    Task fields are snapshots taken when the run started. The record is
    immutable once ``end_time`` is set.
    """
    task_id: str
    task_name: str
    script_path: str
    start_time: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    end_time: Optional[datetime] = None
    success: bool = False
    error_message: Optional[str] = None

    def finish(self, success: bool, error_message: Optional[str] = None,
               end_time: Optional[datetime] = None) -> None:
        """Close the record. Raises RuntimeError when it is already closed."""
        if self.end_time is not None:
            raise RuntimeError(f"Execution record {self.id} is already finished")
        self.success = success
        self.error_message = error_message
        self.end_time = end_time or datetime.now()

    @property
    def is_finished(self) -> bool:
        return self.end_time is not None

    @property
    def duration_ms(self) -> int:
        if self.end_time is None:
            return 0
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    @property
    def duration_text(self) -> str:
        """
        Human readable duration.

        Clean Code: Method name clearly describes what it returns.
        """
        if self.end_time is None:
            return "running..."
        seconds = (self.end_time - self.start_time).total_seconds()
        if seconds < 60:
            return f"{seconds:.1f}s"
        if seconds < 3600:
            return f"{seconds / 60:.1f}min"
        return f"{seconds / 3600:.1f}h"

    @property
    def status_icon(self) -> str:
        return "✓" if self.success else "✗"

    @property
    def status_text(self) -> str:
        return "Success" if self.success else "Failed"


@dataclass
class ScheduledTask:
    """
    When to re-run a script, and whom to tell about it.

    ``last_run``, ``next_run`` and ``last_notification_time`` are transient:
    they are never persisted and are recomputed after load.
    """
    name: str = ""
    script_path: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    enabled: bool = True
    schedule_type: ScheduleType = ScheduleType.DAILY
    execution_time: time = time(0, 0)
    days_of_week: Optional[List[Weekday]] = None
    interval_minutes: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)
    notify_on_completion: bool = False
    notify_policy: NotificationPolicy = NotificationPolicy.ON_ERROR
    notify_interval_minutes: int = 5
    notify_webhook_url: Optional[str] = None

    last_run: Optional[datetime] = field(default=None, compare=False)
    next_run: Optional[datetime] = field(default=None, compare=False)
    last_notification_time: Optional[datetime] = field(default=None, compare=False)

    # ----- scheduling ------------------------------------------------------

    def calculate_next_run(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Recompute and store ``next_run``."""
        self.next_run = self.compute_next_run(now or datetime.now())
        return self.next_run

    def compute_next_run(self, now: datetime) -> Optional[datetime]:
        """Pure function of ``now`` and the task's fields. None means disabled."""
        if not self.enabled:
            return None
        if self.schedule_type == ScheduleType.DAILY:
            return self._next_daily(now)
        if self.schedule_type == ScheduleType.WEEKLY:
            return self._next_weekly(now)
        if self.schedule_type == ScheduleType.INTERVAL:
            return self._next_interval(now)
        return None

    def _next_daily(self, now: datetime) -> datetime:
        today = datetime.combine(now.date(), self.execution_time)
        # Today if the time is still ahead, otherwise tomorrow
        if today > now:
            return today
        return today + timedelta(days=1)

    def _next_weekly(self, now: datetime) -> datetime:
        if not self.days_of_week:
            return NEVER
        days = {d.value for d in self.days_of_week}
        today = datetime.combine(now.date(), self.execution_time)
        for offset in range(7):
            candidate = today + timedelta(days=offset)
            if candidate.weekday() in days and candidate > now:
                return candidate
        # Only today's weekday is selected and its time already passed.
        return today + timedelta(days=7)

    def _next_interval(self, now: datetime) -> datetime:
        if not self.interval_minutes or self.interval_minutes <= 0:
            return NEVER
        if self.last_run is None:
            return now
        return self.last_run + timedelta(minutes=self.interval_minutes)

    def is_due(self, now: datetime) -> bool:
        return self.enabled and self.next_run is not None and self.next_run <= now

    def get_description(self) -> str:
        hhmm = self.execution_time.strftime("%H:%M")
        if self.schedule_type == ScheduleType.DAILY:
            return f"Daily {hhmm}"
        if self.schedule_type == ScheduleType.WEEKLY:
            if not self.days_of_week:
                return "Weekly (no weekdays set)"
            names = ", ".join(d.short_name for d in sorted(self.days_of_week, key=lambda d: d.value))
            return f"Weekly {names} {hhmm}"
        return f"Every {self.interval_minutes} min"

    # ----- persistence -------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize persisted fields only."""
        return {
            "id": self.id,
            "name": self.name,
            "script_path": self.script_path,
            "enabled": self.enabled,
            "schedule_type": self.schedule_type.value,
            "execution_time": self.execution_time.strftime("%H:%M:%S"),
            "days_of_week": [d.name for d in self.days_of_week] if self.days_of_week is not None else None,
            "interval_minutes": self.interval_minutes,
            "created_at": self.created_at.isoformat(),
            "notify_on_completion": self.notify_on_completion,
            "notify_policy": self.notify_policy.value,
            "notify_interval_minutes": self.notify_interval_minutes,
            "notify_webhook_url": self.notify_webhook_url,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ScheduledTask":
        days_raw = data.get("days_of_week")
        days: Optional[List[Weekday]] = None
        if isinstance(days_raw, list):
            days = [Weekday[str(d).upper()] for d in days_raw]

        interval_raw = data.get("interval_minutes")
        created_raw = data.get("created_at")
        webhook = data.get("notify_webhook_url")
        return ScheduledTask(
            id=str(data.get("id") or uuid.uuid4()),
            name=str(data.get("name", "")),
            script_path=str(data.get("script_path", "")),
            enabled=bool(data.get("enabled", True)),
            schedule_type=ScheduleType(str(data.get("schedule_type", ScheduleType.DAILY.value))),
            execution_time=time.fromisoformat(str(data.get("execution_time", "00:00:00"))),
            days_of_week=days,
            interval_minutes=int(interval_raw) if interval_raw is not None else None,
            created_at=datetime.fromisoformat(created_raw) if created_raw else datetime.now(),
            notify_on_completion=bool(data.get("notify_on_completion", False)),
            notify_policy=NotificationPolicy(str(data.get("notify_policy", NotificationPolicy.ON_ERROR.value))),
            notify_interval_minutes=int(data.get("notify_interval_minutes", 5) or 0),
            notify_webhook_url=str(webhook) if webhook not in (None, "") else None,
        )
