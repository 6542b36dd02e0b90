"""
Script engine that executes a sequence of actions against one execution context.

Steps run strictly one after another. After each successful step the engine
honours the control transfer the step requested (skip next, jump, loop back,
exit). A failing step stops the run unless its ``continue_on_error`` flag is
set; the first failure is kept as a one-line summary for reporting.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from .actions import BaseAction, ControlFlowError, ControlKind
from .context import ExecutionContext
from .logger import StatusLogger
from .script_model import AutomationScript
from .templates import TemplateExpander


ActionCallback = Callable[[int, BaseAction, bool], None]
CompletedCallback = Callable[[bool], None]

SOURCE = "Engine"


class ScriptEngine:
    # Executed-step budget per run; turns a runaway loop into a control error.
    DEFAULT_MAX_STEPS = 100_000

    def __init__(
        self,
        actions: Optional[Iterable[BaseAction]] = None,
        logger: Optional[StatusLogger] = None,
        expander: Optional[TemplateExpander] = None,
        sleep_hook: Optional[Callable[[float], None]] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
    ):
        self.actions: List[BaseAction] = list(actions or [])
        self.script_name = "Unnamed Script"
        self._logger = logger or StatusLogger()
        self._expander = expander or TemplateExpander(logger=self._logger)
        self.context = ExecutionContext(logger=self._logger, sleep_hook=sleep_hook)
        self._max_steps = max_steps
        self._running = False
        self._run_lock = threading.Lock()
        self.current_index = -1
        self.first_error: Optional[str] = None
        self._on_action_executed: Optional[ActionCallback] = None
        self._on_completed: Optional[CompletedCallback] = None

    # ----- observers --------------------------------------------------------

    def on_action_executed(self, cb: ActionCallback) -> None:
        self._on_action_executed = cb

    def on_completed(self, cb: CompletedCallback) -> None:
        self._on_completed = cb

    # ----- sequence management ----------------------------------------------

    def add_action(self, action: BaseAction) -> None:
        self.actions.append(action)

    def clear_actions(self) -> None:
        self.actions.clear()
        self.current_index = -1

    def load_from_file(self, path: Union[str, Path]) -> AutomationScript:
        script = AutomationScript.load(path)
        self.actions = list(script.actions)
        self.script_name = script.name
        self._logger.log_info(f"Loaded script '{script.name}': {len(self.actions)} action(s)", SOURCE)
        return script

    def save_to_file(self, path: Union[str, Path]) -> None:
        AutomationScript(name=self.script_name, actions=list(self.actions)).save(path)

    def is_running(self) -> bool:
        return self._running

    # ----- execution ----------------------------------------------------------

    def run(self, actions: Optional[Iterable[BaseAction]] = None) -> bool:
        """Run the sequence once; returns overall success."""
        with self._run_lock:
            if self._running:
                self._logger.log_warning("A script is already running on this engine", SOURCE)
                return False
            self._running = True

        try:
            if actions is not None:
                self.actions = list(actions)
            success = self._run()
        finally:
            self.context.clear()
            self.current_index = -1
            with self._run_lock:
                self._running = False
        return success

    def _run(self) -> bool:
        self.first_error = None
        self.context.clear()
        self.context.engine = self
        total = len(self.actions)
        self._logger.log_info(f"=== Script started ({total} action(s)) ===", SOURCE)

        try:
            self._prepare()
            success = self._execute_steps()
        except ControlFlowError as e:
            self._logger.log_error(str(e), SOURCE)
            if self.first_error is None:
                self.first_error = str(e)
            success = False

        status = "succeeded" if success else "failed"
        self._logger.log_info(f"=== Script {status} ===", SOURCE)
        self._notify_completed(success)
        return success

    def _prepare(self) -> None:
        """Bind context and positions, reset per-run state, check cross-step references."""
        total = len(self.actions)
        for position, action in enumerate(self.actions, start=1):
            action.position = position
            action.context = self.context
            action.last_error = None
            action.control = None
            action.reset_state()

        for action in self.actions:
            if not action.enabled:
                continue
            for target in action.referenced_positions():
                if target < 1 or target > total:
                    action.last_error = f"step #{target} does not exist (1..{total})"
                    raise ControlFlowError(f"#{action.position} {action.name}: {action.last_error}")

    def _execute_steps(self) -> bool:
        total = len(self.actions)
        success = True
        executed = 0
        index = 0

        while index < total:
            action = self.actions[index]
            self.current_index = index
            if not action.enabled:
                self._logger.log_debug(f"[{index + 1}/{total}] {action.name} (disabled)", SOURCE)
                index += 1
                continue

            executed += 1
            try:
                if executed > self._max_steps:
                    raise ControlFlowError(f"Step limit of {self._max_steps} exceeded (runaway loop?)")
                ok = self._execute_one(action, total)
            except ControlFlowError as e:
                action.last_error = str(e)
                self._record_failure(action)
                self._notify_action(index, action, False)
                self._logger.log_error(f"Control error at #{action.position}: {e}", SOURCE)
                return False

            self._notify_action(index, action, ok)

            if not ok:
                success = False
                self._record_failure(action)
                if not action.continue_on_error:
                    self._logger.log_error("Stopping script because of an error", SOURCE)
                    break
                index += 1
                continue

            signal = action.control
            if signal is None or signal.kind == ControlKind.NEXT:
                index += 1
            elif signal.kind == ControlKind.SKIP_NEXT:
                index += 2
            elif signal.kind in (ControlKind.JUMP, ControlKind.LOOP_BACK):
                index = self._target_index(action, signal.target)
            elif signal.kind == ControlKind.EXIT:
                self._logger.log_info(f"Script exited by step #{action.position}", SOURCE)
                break

        return success

    def _execute_one(self, action: BaseAction, total: int) -> bool:
        self._logger.log_info(f"[{action.position}/{total}] {action.name}", SOURCE)
        originals = self._expander.expand_action(action, self.context.variables)
        try:
            if not action.validate():
                return False
            return bool(action.execute())
        except ControlFlowError:
            raise
        except Exception as e:
            action.log_error(f"Unexpected error: {e}")
            return False
        finally:
            # Authored templates survive for the next run.
            for name, value in originals.items():
                setattr(action, name, value)

    def _target_index(self, action: BaseAction, target: int) -> int:
        total = len(self.actions)
        if target < 1 or target > total:
            raise ControlFlowError(f"#{action.position} {action.name}: invalid target #{target}")
        return target - 1

    def _record_failure(self, action: BaseAction) -> None:
        if self.first_error is None:
            message = action.last_error or "failed"
            self.first_error = f"#{action.position} {action.name}: {message}"

    def _notify_action(self, index: int, action: BaseAction, ok: bool) -> None:
        if self._on_action_executed:
            try:
                self._on_action_executed(index, action, ok)
            except Exception as e:
                self._logger.log_warning(f"action observer failed: {e}", SOURCE)

    def _notify_completed(self, ok: bool) -> None:
        if self._on_completed:
            try:
                self._on_completed(ok)
            except Exception as e:
                self._logger.log_warning(f"completion observer failed: {e}", SOURCE)
