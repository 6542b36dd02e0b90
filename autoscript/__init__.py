"""
autoscript: scriptable desktop automation with scheduled, unattended runs.

Scripts are ordered lists of steps described in JSON and executed by the
ScriptEngine against one ExecutionContext per run.

Key parts
---------
- actions:         Step contract and desktop steps (mouse, keyboard, wait, window)
- file_actions:    File-system steps
- control_actions: Variables, if, loop start/end
- webhook:         Webhook step and the shared HTTP helper
- templates:       %token% expansion
- engine:          Runner with continue-on-error and control flow
- scheduling:      Scheduled tasks, history and notifications
"""

from .actions import ActionError, BaseAction, ControlFlowError, ValidationError
from .context import ExecutionContext
from .engine import ScriptEngine
from .logger import StatusLogger
from .script_model import AutomationScript, ScriptLoadError
from .settings_manager import AppSettings, SettingsManager
from .templates import SettingsVariableProvider, TemplateExpander

__all__ = [
    "ActionError",
    "AppSettings",
    "AutomationScript",
    "BaseAction",
    "ControlFlowError",
    "ExecutionContext",
    "ScriptEngine",
    "ScriptLoadError",
    "SettingsManager",
    "SettingsVariableProvider",
    "StatusLogger",
    "TemplateExpander",
    "ValidationError",
]
