"""
Template expansion of ``%token%`` placeholders in step fields.

Tokens are resolved in three groups, in order: built-ins (clock and
identity values), run variables of the current execution context, and
user-defined variables supplied by a variable provider. Unknown tokens are
left untouched.
"""

from __future__ import annotations

import getpass
import socket
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .actions import BaseAction
    from .logger import StatusLogger
    from .settings_manager import SettingsManager


VariableProvider = Callable[[], Mapping[str, str]]


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def builtin_variables(now: datetime) -> Dict[str, str]:
    return {
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H-%M-%S"),
        "datetime": now.strftime("%Y-%m-%d_%H-%M-%S"),
        "timestamp": now.strftime("%Y%m%d%H%M%S"),
        "user": _user_name(),
        "computer": socket.gethostname(),
        "year": now.strftime("%Y"),
        "month": now.strftime("%m"),
        "day": now.strftime("%d"),
        "hour": now.strftime("%H"),
        "minute": now.strftime("%M"),
        "second": now.strftime("%S"),
    }


class TemplateExpander:
    """Expands ``%name%`` tokens.

    User-defined tokens are read from ``variable_provider`` once and cached;
    call ``reload()`` after the backing store changes.
    """

    def __init__(
        self,
        variable_provider: Optional[VariableProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional["StatusLogger"] = None,
    ):
        self._provider = variable_provider
        self._clock = clock or datetime.now
        self._logger = logger
        self._custom: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    def reload(self) -> None:
        with self._lock:
            self._custom = None

    def custom_variables(self) -> Dict[str, str]:
        with self._lock:
            if self._custom is None:
                self._custom = self._load_custom()
            return dict(self._custom)

    def _load_custom(self) -> Dict[str, str]:
        if self._provider is None:
            return {}
        try:
            return {str(k): str(v) for k, v in self._provider().items()}
        except Exception as e:
            if self._logger is not None:
                self._logger.log_warning(f"Failed to load custom variables: {e}", "Templates")
            return {}

    def expand(self, text: str, variables: Optional[Mapping[str, object]] = None) -> str:
        if not text or not text.strip() or "%" not in text:
            return text

        result = text
        for key, value in builtin_variables(self._clock()).items():
            result = result.replace(f"%{key}%", value)
        if variables:
            for key, value in variables.items():
                result = result.replace(f"%{key}%", str(value))
        for key, value in self.custom_variables().items():
            result = result.replace(f"%{key}%", value)
        return result

    def expand_action(
        self,
        action: "BaseAction",
        variables: Optional[Mapping[str, object]] = None,
    ) -> Dict[str, object]:
        """Expand the action's template fields in place.

        Returns the authored values of the fields that changed so the caller
        can restore them after the step ran.
        """
        originals: Dict[str, object] = {}
        for name in action.template_fields:
            value = getattr(action, name)
            if isinstance(value, str):
                expanded = self.expand(value, variables)
            elif isinstance(value, list):
                expanded = [self.expand(v, variables) if isinstance(v, str) else v for v in value]
            else:
                continue
            if expanded != value:
                originals[name] = value
                setattr(action, name, expanded)
        return originals


class SettingsVariableProvider:
    """Reads ``custom_variables`` from the settings file on every call."""

    def __init__(self, settings_manager: "SettingsManager"):
        self._settings_manager = settings_manager

    def __call__(self) -> Mapping[str, str]:
        return self._settings_manager.load().custom_variables
