"""
Automation actions: small, composable building blocks.

Every step of a script is a dataclass deriving from ``BaseAction``. The
engine talks to steps only through the contract defined here (``name``,
``description``, ``validate()``, ``execute()``) plus the ``enabled`` and
``continue_on_error`` flags and the ``last_error`` slot.

Desktop steps defined in this module (type field in JSON):
- mouse_click: click mouse at (x, y)
- keyboard:    type literal text, press a key or a key combination
- wait:        sleep for milliseconds or wait for a window to appear
- window:      launch an application or activate/maximize/minimize/
               restore/close a window

Notes
-----
- On Windows, we use pywinauto for reliable key dispatch and window
  handling. On other platforms, we fallback to pynput (and pyautogui) to send
  input to the currently focused window.
"""

from __future__ import annotations

import dataclasses
import subprocess
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (
    TYPE_CHECKING, Any, ClassVar, Dict, List, Optional, Tuple, Type,
    get_args, get_origin, get_type_hints,
)

from .context import ExecutionContext, LaunchedProcessInfo
from .logger import get_default_logger

if TYPE_CHECKING:  # pragma: no cover
    from .logger import StatusLogger


class ActionError(Exception):
    pass


class ValidationError(ActionError):
    """A step's inputs are structurally invalid; the step is not executed."""


class ControlFlowError(ActionError):
    """Invalid jump/loop target or runaway loop. Always fails the run."""


class ControlKind(Enum):
    NEXT = "next"
    SKIP_NEXT = "skip_next"
    JUMP = "jump"
    LOOP_BACK = "loop_back"
    EXIT = "exit"


@dataclass(frozen=True)
class ControlSignal:
    """Control transfer requested by a step after it executed successfully."""
    kind: ControlKind
    target: int = 0


ACTION_TYPES: Dict[str, Type["BaseAction"]] = {}


def register_action(cls: Type["BaseAction"]) -> Type["BaseAction"]:
    """Class decorator that makes a step kind loadable by its ``kind`` tag."""
    if not cls.kind:
        raise ValueError(f"{cls.__name__} has no kind tag")
    if cls.kind in ACTION_TYPES and ACTION_TYPES[cls.kind] is not cls:
        raise ValueError(f"Duplicate action kind: {cls.kind}")
    ACTION_TYPES[cls.kind] = cls
    return cls


@dataclass
class BaseAction:
    """Common interface for all actions."""

    kind: ClassVar[str] = ""
    # String fields rewritten by the template expander before execution.
    template_fields: ClassVar[Tuple[str, ...]] = ()

    enabled: bool = True
    continue_on_error: bool = False

    # Runtime state, assigned by the engine; never persisted or compared.
    last_error: Optional[str] = field(default=None, init=False, repr=False, compare=False)
    position: int = field(default=0, init=False, repr=False, compare=False)
    context: Optional[ExecutionContext] = field(default=None, init=False, repr=False, compare=False)
    control: Optional[ControlSignal] = field(default=None, init=False, repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.kind

    @property
    def description(self) -> str:
        return self.name

    # ----- contract --------------------------------------------------------

    def check(self) -> None:
        """Raise ValidationError when the step's fields are invalid."""

    def validate(self) -> bool:
        try:
            self.check()
        except ValidationError as e:
            self.log_error(str(e))
            return False
        return True

    def run(self) -> None:  # pragma: no cover - runtime behavior
        raise NotImplementedError

    def execute(self) -> bool:
        """Run the step; returns success. Control errors propagate to the engine."""
        self.last_error = None
        self.control = None
        try:
            self.run()
            return True
        except ControlFlowError:
            raise
        except ActionError as e:
            self.log_error(str(e))
            return False

    def referenced_positions(self) -> List[int]:
        """1-based positions of other steps this step depends on."""
        return []

    def reset_state(self) -> None:
        """Reset per-run internal state (counters etc.)."""

    def request(self, kind: ControlKind, target: int = 0) -> None:
        self.control = ControlSignal(kind, target)

    # ----- helpers for step bodies ------------------------------------------

    @property
    def ctx(self) -> ExecutionContext:
        if self.context is None:
            self.context = ExecutionContext()
        return self.context

    @property
    def logger(self) -> "StatusLogger":
        if self.context is not None:
            return self.context.logger
        return get_default_logger()

    def log_debug(self, message: str) -> None:
        self.logger.log_debug(message, self.name)

    def log_info(self, message: str) -> None:
        self.logger.log_info(message, self.name)

    def log_warning(self, message: str) -> None:
        self.logger.log_warning(message, self.name)

    def log_error(self, message: str) -> None:
        self.last_error = message
        self.logger.log_error(message, self.name)

    # ----- persistence -------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the authored fields (runtime state excluded)."""
        data: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            if not f.init:
                continue
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = [v.value if isinstance(v, Enum) else v for v in value]
            data[f.name] = value
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BaseAction":
        """Build a step from ``{"type": kind, "data": {...}}``."""
        action_type = str(data.get("type", "")).strip().lower()
        cls = ACTION_TYPES.get(action_type)
        if cls is None:
            raise ActionError(f"Unknown action type: {action_type}")
        payload = data.get("data") or {}
        if not isinstance(payload, dict):
            raise ActionError(f"Invalid payload for action type: {action_type}")
        return cls.from_payload(payload)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BaseAction":
        hints = get_type_hints(cls)
        kwargs: Dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            if not f.init or f.name not in payload:
                continue
            kwargs[f.name] = _coerce(hints[f.name], payload[f.name])
        return cls(**kwargs)


def _coerce(hint: Any, raw: Any) -> Any:
    origin = get_origin(hint)
    if origin is not None:
        args = [a for a in get_args(hint) if a is not type(None)]
        if raw is None:
            return None
        if origin in (list, List):
            inner = args[0] if args else Any
            return [_coerce(inner, item) for item in (raw or [])]
        # Optional[X]
        if len(args) == 1:
            return _coerce(args[0], raw)
        return raw
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(raw)
    if hint is bool:
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no", ""):
                return False
            raise ValueError(f"Not a boolean: {raw!r}")
        return bool(raw)
    if hint is int:
        return int(raw or 0)
    if hint is float:
        return float(raw or 0.0)
    if hint is str:
        return "" if raw is None else str(raw)
    return raw


# ---------------------------------------------------------------------------
# Mouse
# ---------------------------------------------------------------------------


class MouseClickType(Enum):
    LEFT = "left"
    RIGHT = "right"
    DOUBLE = "double"
    MIDDLE = "middle"


@register_action
@dataclass
class MouseClickAction(BaseAction):
    kind: ClassVar[str] = "mouse_click"

    x: int = 0
    y: int = 0
    click_type: MouseClickType = MouseClickType.LEFT
    delay_after_ms: int = 100

    @property
    def name(self) -> str:
        return "Mouse click"

    @property
    def description(self) -> str:
        return f"{self.click_type.value} click at ({self.x}, {self.y})"

    def check(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValidationError("Coordinates must not be negative")

    def run(self) -> None:
        self.log_info(f"mouse_click: x={self.x}, y={self.y}, button={self.click_type.value}")
        button = "left" if self.click_type == MouseClickType.DOUBLE else self.click_type.value
        count = 2 if self.click_type == MouseClickType.DOUBLE else 1

        # Prefer pynput for mouse where available; fallback to pyautogui
        m_ctrl_cls, m_btn_mod = _get_pynput_mouse()
        if m_ctrl_cls is not None and m_btn_mod is not None:
            try:
                controller = m_ctrl_cls()
                controller.position = (int(self.x), int(self.y))
                # Let the cursor settle before clicking
                self.ctx.sleep(0.05)
                controller.click(getattr(m_btn_mod, button), count)
                self.ctx.sleep_ms(self.delay_after_ms)
                return
            except Exception as e:  # pragma: no cover
                self.log_warning(f"pynput mouse_click failed, fallback to pyautogui: {e}")
        try:
            import pyautogui  # local import to avoid hard dep at import time
            pyautogui.click(x=int(self.x), y=int(self.y), clicks=count, button=button)
        except Exception as e:  # pragma: no cover
            raise ActionError(f"mouse_click failed: {e}")
        self.ctx.sleep_ms(self.delay_after_ms)


# ---------------------------------------------------------------------------
# Keyboard
# ---------------------------------------------------------------------------


class KeyboardActionType(Enum):
    TYPE_TEXT = "type_text"
    PRESS_KEY = "press_key"
    HOTKEY = "hotkey"


@register_action
@dataclass
class KeyboardAction(BaseAction):
    kind: ClassVar[str] = "keyboard"
    template_fields: ClassVar[Tuple[str, ...]] = ("text",)

    action_type: KeyboardActionType = KeyboardActionType.TYPE_TEXT
    text: str = ""
    key: str = "enter"
    modifiers: List[str] = field(default_factory=list)
    delay_between_keys_ms: int = 10

    @property
    def name(self) -> str:
        if self.action_type == KeyboardActionType.TYPE_TEXT:
            return "Type text"
        return "Key input"

    @property
    def description(self) -> str:
        if self.action_type == KeyboardActionType.TYPE_TEXT:
            return f'Type "{self.text}"'
        return "+".join([*self.modifiers, self.key])

    def check(self) -> None:
        if self.action_type == KeyboardActionType.TYPE_TEXT and not self.text:
            raise ValidationError("Text to type is empty")
        if self.action_type != KeyboardActionType.TYPE_TEXT and not self.key:
            raise ValidationError("No key specified")

    def run(self) -> None:
        if self.action_type == KeyboardActionType.TYPE_TEXT:
            self._type_text()
        elif self.action_type == KeyboardActionType.PRESS_KEY:
            self._press_keys([], self.key)
        else:
            self._press_keys(self.modifiers, self.key)

    def _type_text(self) -> None:
        self.log_info(f"type_text: {self.text}")
        # Prefer pywinauto on Windows with a tiny pause to prevent dropped chars
        if sys.platform.startswith("win"):
            if _try_pywinauto_send_keys(self.text, self, pause=self.delay_between_keys_ms / 1000.0):
                self.ctx.sleep(0.1)
                return
        kb_cls, _key_mod = _get_pynput()
        if kb_cls is None:
            raise ActionError("No keyboard backend available (install pynput)")
        kb = kb_cls()
        for ch in self.text:
            kb.press(ch); kb.release(ch)
            self.ctx.sleep_ms(self.delay_between_keys_ms)
        # Stabilize before next action
        self.ctx.sleep(0.1)

    def _press_keys(self, modifiers: List[str], key: str) -> None:
        self.log_info(f"key: {'+'.join([*modifiers, key])}")
        kb_cls, key_mod = _get_pynput()
        if kb_cls is None or key_mod is None:
            try:
                import pyautogui  # local import
                pyautogui.hotkey(*[m.lower() for m in modifiers], key.lower())
                return
            except Exception as e:  # pragma: no cover
                raise ActionError(f"No keyboard backend available: {e}")
        kb = kb_cls()
        resolved = [_resolve_key(key_mod, m) for m in modifiers]
        main = _resolve_key(key_mod, key)
        for mod in resolved:
            kb.press(mod)
            self.ctx.sleep(0.01)
        kb.press(main)
        self.ctx.sleep_ms(self.delay_between_keys_ms)
        kb.release(main)
        for mod in reversed(resolved):
            kb.release(mod)
            self.ctx.sleep(0.01)
        self.ctx.sleep(0.05)


_KEY_ALIASES: Dict[str, str] = {
    "control": "ctrl",
    "return": "enter",
    "escape": "esc",
    "win": "cmd",
    "windows": "cmd",
    "super": "cmd",
    "option": "alt",
    "pageup": "page_up",
    "pagedown": "page_down",
    "del": "delete",
}


def _resolve_key(key_mod: Any, name: str) -> Any:
    token = name.strip().lower()
    token = _KEY_ALIASES.get(token, token)
    special = getattr(key_mod, token, None)
    if special is not None:
        return special
    if len(token) == 1:
        return token
    raise ActionError(f"Unknown key: {name}")


# ---------------------------------------------------------------------------
# Wait
# ---------------------------------------------------------------------------


class WaitType(Enum):
    FIXED_TIME = "fixed_time"
    WINDOW_EXISTS = "window_exists"


@register_action
@dataclass
class WaitAction(BaseAction):
    kind: ClassVar[str] = "wait"
    template_fields: ClassVar[Tuple[str, ...]] = ("window_title",)

    wait_type: WaitType = WaitType.FIXED_TIME
    milliseconds: int = 1000
    window_title: str = ""
    timeout_seconds: int = 30

    @property
    def name(self) -> str:
        return "Wait for window" if self.wait_type == WaitType.WINDOW_EXISTS else "Wait"

    @property
    def description(self) -> str:
        if self.wait_type == WaitType.WINDOW_EXISTS:
            return f'Wait for window "{self.window_title}" ({self.timeout_seconds}s)'
        return f"Wait {self.milliseconds} ms"

    def check(self) -> None:
        if self.wait_type == WaitType.FIXED_TIME and self.milliseconds <= 0:
            raise ValidationError("Wait time must be positive")
        if self.wait_type == WaitType.WINDOW_EXISTS and not self.window_title:
            raise ValidationError("Window title is empty")

    def run(self) -> None:
        if self.wait_type == WaitType.FIXED_TIME:
            self.log_info(f"Waiting {self.milliseconds} ms")
            self.ctx.sleep_ms(self.milliseconds)
            return

        self.log_info(f'Waiting for window "{self.window_title}"')
        deadline = time.monotonic() + self.timeout_seconds
        while time.monotonic() < deadline:
            if _find_window(self.window_title) is not None:
                self.log_info(f"Window found: {self.window_title}")
                return
            self.ctx.sleep(0.5)
        raise ActionError(f'Timed out waiting for window "{self.window_title}"')


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------


class WindowActionType(Enum):
    LAUNCH = "launch"
    ACTIVATE = "activate"
    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"
    RESTORE = "restore"
    CLOSE = "close"


class WindowReferenceType(Enum):
    WINDOW_TITLE = "window_title"
    LAUNCH_ACTION = "launch_action"


@register_action
@dataclass
class WindowAction(BaseAction):
    kind: ClassVar[str] = "window"
    template_fields: ClassVar[Tuple[str, ...]] = ("executable_path", "arguments", "window_title")

    action_type: WindowActionType = WindowActionType.ACTIVATE
    executable_path: str = ""
    arguments: List[str] = field(default_factory=list)
    reference_type: WindowReferenceType = WindowReferenceType.WINDOW_TITLE
    window_title: str = ""
    launch_action_position: int = 0
    wait_after_launch_ms: int = 1000

    @property
    def name(self) -> str:
        if self.action_type == WindowActionType.LAUNCH:
            return f"Launch: {Path(self.executable_path).name}"
        return f"Window {self.action_type.value}"

    @property
    def description(self) -> str:
        if self.action_type == WindowActionType.LAUNCH:
            return f"Run {self.executable_path} {' '.join(self.arguments)}".rstrip()
        if self.reference_type == WindowReferenceType.LAUNCH_ACTION:
            return f"{self.action_type.value} window launched by step #{self.launch_action_position}"
        return f'{self.action_type.value} window titled "{self.window_title}"'

    def check(self) -> None:
        if self.action_type == WindowActionType.LAUNCH:
            if not self.executable_path.strip():
                raise ValidationError("Executable path is empty")
        elif self.reference_type == WindowReferenceType.LAUNCH_ACTION:
            if self.launch_action_position <= 0:
                raise ValidationError("Launch step position is not set")
        elif not self.window_title.strip():
            raise ValidationError("Window title is empty")

    def referenced_positions(self) -> List[int]:
        if (self.action_type != WindowActionType.LAUNCH
                and self.reference_type == WindowReferenceType.LAUNCH_ACTION):
            return [self.launch_action_position]
        return []

    def run(self) -> None:
        if self.action_type == WindowActionType.LAUNCH:
            self._launch()
        else:
            self._manipulate()

    def _launch(self) -> None:
        try:
            process = subprocess.Popen([self.executable_path, *self.arguments])
        except OSError as e:
            raise ActionError(f"Failed to start process '{self.executable_path}': {e}")
        info = LaunchedProcessInfo(process_id=process.pid, process_name=Path(self.executable_path).stem)
        self.ctx.launched_processes[self.position] = info
        self.log_info(f"Process {info.process_name} (PID {info.process_id}) recorded as step #{self.position}")
        self.ctx.sleep_ms(self.wait_after_launch_ms)

    def _manipulate(self) -> None:
        if self.reference_type == WindowReferenceType.LAUNCH_ACTION:
            info = self.ctx.launched_processes.get(self.launch_action_position)
            if info is None:
                raise ActionError(f"No process was launched by step #{self.launch_action_position}")
            window = _find_window_by_process(info.process_id)
        else:
            window = _find_window(self.window_title)
        if window is None:
            raise ActionError(f"Window not found: {self.description}")

        if self.action_type == WindowActionType.ACTIVATE:
            window.set_focus()
        elif self.action_type == WindowActionType.MAXIMIZE:
            window.set_focus()
            window.maximize()
        elif self.action_type == WindowActionType.MINIMIZE:
            window.minimize()
        elif self.action_type == WindowActionType.RESTORE:
            window.restore()
            window.set_focus()
        elif self.action_type == WindowActionType.CLOSE:
            window.close()
        # Give the window manager a moment
        self.ctx.sleep(0.1)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


def _get_pynput() -> Tuple[Optional[Any], Optional[Any]]:
    """Import pynput lazily and return (KeyboardControllerClass, KeyModule)."""
    try:
        from pynput.keyboard import Controller as KeyboardController, Key as KeyModule  # type: ignore
        return KeyboardController, KeyModule
    except Exception:
        return None, None


def _get_pynput_mouse() -> Tuple[Optional[Any], Optional[Any]]:
    """Import pynput.mouse lazily and return (MouseControllerClass, ButtonModule)."""
    try:
        from pynput.mouse import Controller as MouseController, Button as MouseButton  # type: ignore
        return MouseController, MouseButton
    except Exception:
        return None, None


def _try_pywinauto_send_keys(text: str, action: BaseAction, *, pause: float = 0.0) -> bool:
    """Try to send keys via pywinauto on Windows; return True on success.

    pause: small delay (seconds) between characters to improve reliability.
    """
    if not sys.platform.startswith("win"):
        return False
    try:
        from pywinauto.keyboard import send_keys as pw_send_keys  # type: ignore
        pw_send_keys(text, with_spaces=True, pause=max(0.0, float(pause)))
        return True
    except Exception as e:  # pragma: no cover
        action.log_warning(f"pywinauto send_keys failed: {e}")
        return False


def _require_windows() -> None:
    if not sys.platform.startswith("win"):
        raise ActionError("Window handling is only supported on Windows")


def _find_window(title: str) -> Optional[Any]:
    """Return the first visible top-level window whose title contains ``title``."""
    _require_windows()
    from pywinauto import Desktop  # type: ignore

    needle = title.lower()
    for win in Desktop(backend="uia").windows(visible_only=True):
        if needle in (win.window_text() or "").lower():
            return win
    return None


def _find_window_by_process(process_id: int) -> Optional[Any]:
    _require_windows()
    from pywinauto import Application  # type: ignore
    from pywinauto.findwindows import ElementNotFoundError  # type: ignore

    try:
        app = Application(backend="uia").connect(process=process_id, timeout=5)
        return app.top_window()
    except (ElementNotFoundError, RuntimeError):
        return None
