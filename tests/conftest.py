"""Shared fixtures: quiet logger, sleep-free engine, fake steps, fixed clock.

Desktop backends are never touched; the fake steps below only record that
they ran.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, List, Tuple

import pytest

from autoscript.actions import ActionError, BaseAction
from autoscript.engine import ScriptEngine
from autoscript.logger import StatusLogger
from autoscript.templates import TemplateExpander


FIXED_NOW = datetime(2024, 3, 5, 7, 8, 9)


@dataclass
class RecordingAction(BaseAction):
    """Appends its (expanded) label to a shared journal; optionally fails."""

    kind: ClassVar[str] = "recording"
    template_fields: ClassVar[Tuple[str, ...]] = ("label",)

    label: str = ""
    succeed: bool = True
    journal: List[str] = field(default_factory=list, repr=False, compare=False)

    @property
    def name(self) -> str:
        return f"Record {self.label}"

    def run(self) -> None:
        self.journal.append(self.label)
        if not self.succeed:
            raise ActionError(f"{self.label} failed")


class FakeHandle:
    def __init__(self, fail_on_close: bool = False):
        self.closed = False
        self.fail_on_close = fail_on_close

    def close(self) -> None:
        self.closed = True
        if self.fail_on_close:
            raise OSError("handle already gone")


@dataclass
class OpenResourceAction(BaseAction):
    """Registers a handle in the context, as a spreadsheet step would."""

    kind: ClassVar[str] = "open_resource"

    key: str = "book.xlsx"
    handle: FakeHandle = field(default_factory=FakeHandle, compare=False)

    def run(self) -> None:
        self.ctx.register_resource(self.key, self.handle)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def logger():
    return StatusLogger(max_entries=1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def expander(logger, clock):
    return TemplateExpander(clock=clock, logger=logger)


@pytest.fixture
def engine(logger, expander):
    return ScriptEngine(logger=logger, expander=expander, sleep_hook=lambda seconds: None)


@pytest.fixture
def journal():
    return []


@pytest.fixture
def step(journal):
    """Factory for recording steps that share one journal."""

    def make(label: str, succeed: bool = True, **kwargs) -> RecordingAction:
        return RecordingAction(label=label, succeed=succeed, journal=journal, **kwargs)

    return make
