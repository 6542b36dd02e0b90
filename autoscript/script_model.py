"""
Automation script data model and JSON persistence.

A script file looks like::

    {
      "name": "Daily report",
      "actions": [
        {"type": "wait", "data": {"milliseconds": 500, "enabled": true, ...}},
        ...
      ]
    }

Each entry's ``type`` is the step kind tag; ``data`` holds the step's own
fields. An unknown ``type`` makes the whole file fail to load.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

# Importing the step modules registers their kinds.
from . import control_actions, file_actions, webhook  # noqa: F401
from .actions import ActionError, BaseAction
from .settings_manager import write_json_atomic


class ScriptLoadError(Exception):
    pass


@dataclass
class AutomationScript:
    name: str = "Unnamed Script"
    actions: List[BaseAction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "actions": [{"type": a.kind, "data": a.to_dict()} for a in self.actions],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "AutomationScript":
        if not isinstance(data, dict):
            raise ScriptLoadError("Script must be a JSON object")
        name = str(data.get("name", "Unnamed Script"))
        actions_data = data.get("actions", []) or []
        if not isinstance(actions_data, list):
            raise ScriptLoadError("'actions' must be a list")
        actions: List[BaseAction] = []
        for index, raw in enumerate(actions_data, start=1):
            if not isinstance(raw, dict):
                raise ScriptLoadError(f"Step #{index} is not an object")
            try:
                actions.append(BaseAction.from_dict(raw))
            except (ActionError, TypeError, ValueError) as e:
                raise ScriptLoadError(f"Step #{index}: {e}") from e
        return AutomationScript(name=name, actions=actions)

    @staticmethod
    def load(path: Union[str, Path]) -> "AutomationScript":
        path = Path(path)
        if not path.exists():
            raise ScriptLoadError(f"File not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ScriptLoadError(f"Failed to read script {path}: {e}") from e
        return AutomationScript.from_dict(data)

    def save(self, path: Union[str, Path]) -> None:
        write_json_atomic(Path(path), self.to_dict())
