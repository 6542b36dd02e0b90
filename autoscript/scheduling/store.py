"""Persistence of the scheduled task list (``scheduled_tasks.json``)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List, Union

from ..settings_manager import write_json_atomic
from .models import ScheduledTask


class TaskStoreError(Exception):
    pass


def save_tasks(path: Union[str, Path], tasks: Iterable[ScheduledTask]) -> None:
    """Write persisted task fields atomically; transient fields are dropped."""
    write_json_atomic(Path(path), [task.to_dict() for task in tasks])


def load_tasks(path: Union[str, Path]) -> List[ScheduledTask]:
    """Read tasks back. A missing file means no tasks."""
    path = Path(path)
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise TaskStoreError(f"Failed to read tasks from {path}: {e}") from e
    if not isinstance(raw, list):
        raise TaskStoreError(f"{path}: expected a list of tasks")

    tasks: List[ScheduledTask] = []
    for index, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise TaskStoreError(f"Task #{index} is not an object")
        try:
            tasks.append(ScheduledTask.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            raise TaskStoreError(f"Task #{index}: {e}") from e
    return tasks
