"""
Scheduling: fire scripts on Daily / Weekly / Interval schedules.

- models:   ScheduledTask, ExecutionRecord and their enums
- history:  bounded FIFO of execution records
- notifier: webhook notifications about finished runs
- store:    JSON persistence of the task list
- engine:   SchedulerEngine (tick thread, fire-and-forget runs)
"""

from .engine import EngineScriptRunner, SchedulerEngine
from .history import HistoryRing
from .models import ExecutionRecord, NotificationPolicy, ScheduledTask, ScheduleType, Weekday
from .notifier import WebhookNotifier
from .store import TaskStoreError

__all__ = [
    "EngineScriptRunner",
    "ExecutionRecord",
    "HistoryRing",
    "NotificationPolicy",
    "ScheduleType",
    "ScheduledTask",
    "SchedulerEngine",
    "TaskStoreError",
    "Weekday",
    "WebhookNotifier",
]
