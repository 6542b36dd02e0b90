"""
Outbound run notifications for scheduled tasks.
"""

from __future__ import annotations

import json
from pathlib import PurePath
from typing import Optional

import httpx

from ..logger import StatusLogger
from ..webhook import DEFAULT_TIMEOUT_SECONDS, post_json
from .models import ExecutionRecord, ScheduledTask

SOURCE = "Notifier"


def script_display_name(script_path: str) -> str:
    """Scripts live as ``Scripts/<name>/script.rpa.json``; the folder names the script."""
    path = PurePath(script_path)
    if path.parent.name:
        return path.parent.name
    return path.stem or "unknown"


class WebhookNotifier:
    """Posts ``{"text": message}`` to the task's webhook or the default one."""

    def __init__(
        self,
        default_url: Optional[str] = None,
        logger: Optional[StatusLogger] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.default_url = default_url
        self._logger = logger or StatusLogger()
        self._timeout = timeout
        self._transport = transport

    def build_message(self, task: ScheduledTask, record: ExecutionRecord) -> str:
        icon = "✅" if record.success else "❌"
        outcome = "succeeded" if record.success else "failed"
        if record.end_time is not None:
            duration = f"{(record.end_time - record.start_time).total_seconds():.1f}s"
        else:
            duration = "unknown"

        lines = [
            f"{icon} Scheduled run {outcome}",
            f"Task: {task.name}",
            f"Script: {script_display_name(task.script_path)}",
            f"Started: {record.start_time.strftime('%Y/%m/%d %H:%M:%S')}",
            f"Duration: {duration}",
            f"Result: {record.status_text}",
        ]
        if not record.success and record.error_message and record.error_message.strip():
            lines.append(f"Error: {record.error_message}")
        return "\n".join(lines)

    def send(self, task: ScheduledTask, record: ExecutionRecord) -> bool:
        """Deliver one notification. Returns True on a 2xx response."""
        url = task.notify_webhook_url or self.default_url
        if not url:
            self._logger.log_warning(f"No webhook URL configured for task '{task.name}'", SOURCE)
            return False

        body = json.dumps({"text": self.build_message(task, record)}, ensure_ascii=False)
        try:
            response = post_json(url, body, timeout=self._timeout, transport=self._transport)
        except httpx.HTTPError as e:
            self._logger.log_error(f"Notification for '{task.name}' failed: {e}", SOURCE)
            return False

        if not response.is_success:
            self._logger.log_warning(
                f"Notification for '{task.name}' failed (HTTP {response.status_code})", SOURCE
            )
            return False
        self._logger.log_info(f"Notification sent: {task.name}", SOURCE)
        return True
