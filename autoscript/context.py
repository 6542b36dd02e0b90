"""
Per-run execution context shared by the steps of one script run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Type, TypeVar, Union

from .logger import StatusLogger, get_default_logger

if TYPE_CHECKING:  # pragma: no cover
    from .actions import BaseAction
    from .engine import ScriptEngine


VariableValue = Union[str, int, float]
A = TypeVar("A", bound="BaseAction")


@dataclass
class LaunchedProcessInfo:
    """Process started by a window/launch step, keyed by that step's position."""
    process_id: int
    process_name: str


class ExecutionContext:
    """State shared between the steps of a single run.

    Exactly one context exists per run and it is never shared across
    concurrent runs. ``clear()`` releases every opened resource and must be
    called at the start and at the end of each run.
    """

    def __init__(
        self,
        logger: Optional[StatusLogger] = None,
        sleep_hook: Optional[Callable[[float], None]] = None,
    ):
        self.launched_processes: Dict[int, LaunchedProcessInfo] = {}
        self.open_resources: Dict[str, Any] = {}
        self.variables: Dict[str, VariableValue] = {}
        self.engine: Optional["ScriptEngine"] = None
        self.logger = logger or get_default_logger()
        self._sleep = sleep_hook

    def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self._sleep:
            self._sleep(seconds)
        else:
            time.sleep(seconds)

    def sleep_ms(self, ms: int) -> None:
        self.sleep(max(ms, 0) / 1000.0)

    # ----- variables -----------------------------------------------------

    def set_variable(self, name: str, value: VariableValue) -> None:
        self.variables[name] = value

    def get_variable(self, name: str) -> Optional[VariableValue]:
        return self.variables.get(name)

    # ----- external resources ---------------------------------------------

    def register_resource(self, key: str, handle: Any) -> None:
        """Track an opened handle; a previous handle under the same key is released."""
        if key in self.open_resources:
            self.release_resource(key)
        self.open_resources[key] = handle

    def get_resource(self, key: str) -> Optional[Any]:
        return self.open_resources.get(key)

    def release_resource(self, key: str) -> bool:
        handle = self.open_resources.pop(key, None)
        if handle is None:
            return False
        self._close_handle(key, handle)
        return True

    def _close_handle(self, key: str, handle: Any) -> None:
        close = getattr(handle, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception as e:
            self.logger.log_warning(f"Failed to release resource '{key}': {e}", "Context")

    # ----- cross-step addressing ------------------------------------------

    def get_action(self, position: int, expected: Optional[Type[A]] = None) -> A:
        """Return the step at a 1-based position of the running sequence.

        Raises ControlFlowError when the position is out of range or the step
        is not of the expected kind.
        """
        from .actions import ControlFlowError

        if self.engine is None:
            raise ControlFlowError("No script engine bound to the execution context")
        actions = self.engine.actions
        if position < 1 or position > len(actions):
            raise ControlFlowError(f"Step #{position} does not exist (1..{len(actions)})")
        action = actions[position - 1]
        if expected is not None and not isinstance(action, expected):
            raise ControlFlowError(
                f"Step #{position} is {action.kind}, expected {expected.kind}"
            )
        return action  # type: ignore[return-value]

    def clear(self) -> None:
        self.launched_processes.clear()
        for key, handle in list(self.open_resources.items()):
            self._close_handle(key, handle)
        self.open_resources.clear()
        self.variables.clear()
