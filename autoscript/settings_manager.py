"""Persistence utilities for autoscript settings."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class AppSettings:
    """Persisted application preferences."""

    custom_variables: Dict[str, str] = field(default_factory=dict)
    default_webhook_url: Optional[str] = None
    scheduler_check_interval_seconds: float = 10.0
    max_history: int = 100
    log_max_entries: int = 500

    def to_dict(self) -> Dict[str, Any]:
        """Serialize settings to primitive types for JSON storage."""
        return {
            "custom_variables": dict(self.custom_variables),
            "default_webhook_url": self.default_webhook_url,
            "scheduler_check_interval_seconds": self.scheduler_check_interval_seconds,
            "max_history": self.max_history,
            "log_max_entries": self.log_max_entries,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "AppSettings":
        """Create settings instance from JSON dictionary."""
        variables_data = data.get("custom_variables", {}) or {}
        variables: Dict[str, str] = {}
        if isinstance(variables_data, dict):
            for key, value in variables_data.items():
                variables[str(key)] = "" if value is None else str(value)

        webhook = data.get("default_webhook_url")
        return AppSettings(
            custom_variables=variables,
            default_webhook_url=str(webhook) if webhook not in (None, "") else None,
            scheduler_check_interval_seconds=float(data.get("scheduler_check_interval_seconds", 10.0) or 10.0),
            max_history=int(data.get("max_history", 100) or 100),
            log_max_entries=int(data.get("log_max_entries", 500) or 500),
        )


class SettingsManager:
    """Handles loading and saving application settings to disk."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = Path(storage_path) if storage_path else Path.cwd() / "settings.json"

    @property
    def storage_path(self) -> Path:
        """Absolute path to the settings file."""
        return self._storage_path

    def load(self) -> AppSettings:
        """Load settings from disk, returning defaults if the file is missing or corrupt."""
        path = self.storage_path
        if not path.exists():
            return AppSettings()

        try:
            content = path.read_text(encoding="utf-8")
            raw_data = json.loads(content)
            if not isinstance(raw_data, dict):
                raise ValueError("Settings file has invalid structure")
            return AppSettings.from_dict(raw_data)
        except (OSError, ValueError):
            # Corrupt or unreadable file; fall back to defaults but keep backup for inspection.
            backup_path = path.with_suffix(".bak")
            try:
                path.replace(backup_path)
            except OSError:
                # Ignore backup failures; we still return defaults.
                pass
            return AppSettings()

    def save(self, settings: AppSettings) -> None:
        """Persist settings atomically to disk."""
        write_json_atomic(self.storage_path, settings.to_dict())


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)
