"""
Scheduler engine - fires scheduled tasks and keeps their execution history.

SRP: Decides *when* a script runs and records the outcome. Running the
script itself is delegated to a script runner (by default a fresh
ScriptEngine per run), delivering notifications to a notifier.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple, Union

from ..engine import ScriptEngine
from ..logger import StatusLogger
from ..templates import TemplateExpander
from . import store
from .history import HistoryRing
from .models import ExecutionRecord, NotificationPolicy, ScheduledTask
from .notifier import WebhookNotifier

SOURCE = "Scheduler"

# (success, first error summary)
ScriptResult = Tuple[bool, Optional[str]]
ScriptRunner = Callable[[ScheduledTask], ScriptResult]
TaskCallback = Callable[[ScheduledTask], None]
CompletedCallback = Callable[[ScheduledTask, ExecutionRecord], None]


class EngineScriptRunner:
    """Loads the task's script into a fresh ScriptEngine and runs it once."""

    def __init__(self, logger: Optional[StatusLogger] = None, expander: Optional[TemplateExpander] = None):
        self._logger = logger or StatusLogger()
        self._expander = expander

    def __call__(self, task: ScheduledTask) -> ScriptResult:
        engine = ScriptEngine(logger=self._logger, expander=self._expander)
        try:
            engine.load_from_file(task.script_path)
            success = engine.run()
            if success:
                return True, None
            return False, engine.first_error or "Script execution failed"
        finally:
            engine.context.clear()


class SchedulerEngine:
    DEFAULT_CHECK_INTERVAL = 10.0

    def __init__(
        self,
        script_runner: Optional[ScriptRunner] = None,
        notifier: Optional[WebhookNotifier] = None,
        logger: Optional[StatusLogger] = None,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        max_history: int = HistoryRing.DEFAULT_CAPACITY,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._logger = logger or StatusLogger()
        self._script_runner = script_runner or EngineScriptRunner(logger=self._logger)
        self._notifier = notifier or WebhookNotifier(logger=self._logger)
        self._check_interval = check_interval
        self._clock = clock or datetime.now

        self._lock = threading.RLock()
        self._tasks: List[ScheduledTask] = []
        self._history = HistoryRing(max_history)
        self._in_flight: Set[str] = set()

        self._stop_event = threading.Event()
        self._tick_thread: Optional[threading.Thread] = None
        self._running = False

        self._on_task_started: Optional[TaskCallback] = None
        self._on_task_completed: Optional[CompletedCallback] = None

    # ----- observers --------------------------------------------------------

    def on_task_started(self, cb: TaskCallback) -> None:
        self._on_task_started = cb

    def on_task_completed(self, cb: CompletedCallback) -> None:
        self._on_task_completed = cb

    # ----- task list ----------------------------------------------------------

    @property
    def tasks(self) -> List[ScheduledTask]:
        with self._lock:
            return list(self._tasks)

    @property
    def execution_history(self) -> List[ExecutionRecord]:
        with self._lock:
            return self._history.snapshot()

    def get_task_history(self, task_id: str) -> List[ExecutionRecord]:
        """Records for one task, newest first."""
        with self._lock:
            return self._history.latest_for(task_id)

    @property
    def is_running(self) -> bool:
        return self._running

    def add_task(self, task: ScheduledTask) -> None:
        with self._lock:
            task.calculate_next_run(self._clock())
            self._tasks.append(task)
        self._logger.log_info(f"Task added: {task.name} ({task.get_description()})", SOURCE)

    def remove_task(self, task_id: str) -> bool:
        with self._lock:
            task = self._find(task_id)
            if task is None:
                return False
            self._tasks.remove(task)
        self._logger.log_info(f"Task removed: {task.name}", SOURCE)
        return True

    def update_task(self, task: ScheduledTask) -> bool:
        with self._lock:
            for index, existing in enumerate(self._tasks):
                if existing.id == task.id:
                    task.last_run = task.last_run or existing.last_run
                    task.last_notification_time = task.last_notification_time or existing.last_notification_time
                    task.calculate_next_run(self._clock())
                    self._tasks[index] = task
                    break
            else:
                return False
        self._logger.log_info(f"Task updated: {task.name}", SOURCE)
        return True

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        with self._lock:
            return self._find(task_id)

    def clear_tasks(self) -> None:
        with self._lock:
            self._tasks.clear()

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def save_tasks(self, path: Union[str, Path]) -> None:
        store.save_tasks(path, self.tasks)
        self._logger.log_info(f"Saved {len(self.tasks)} task(s) to {path}", SOURCE)

    def load_tasks(self, path: Union[str, Path]) -> List[ScheduledTask]:
        """Replace the task list with the file's tasks. Raises TaskStoreError."""
        loaded = store.load_tasks(path)
        now = self._clock()
        with self._lock:
            for task in loaded:
                task.calculate_next_run(now)
            self._tasks = list(loaded)
        self._logger.log_info(f"Loaded {len(loaded)} task(s) from {path}", SOURCE)
        return loaded

    def _find(self, task_id: str) -> Optional[ScheduledTask]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    # ----- lifecycle ------------------------------------------------------------

    def start(self) -> bool:
        """Recompute every next run and start ticking. Returns False if already started."""
        with self._lock:
            if self._running:
                self._logger.log_warning("Scheduler is already running", SOURCE)
                return False
            now = self._clock()
            for task in self._tasks:
                task.calculate_next_run(now)
            self._running = True
            self._stop_event.clear()

        self._tick_thread = threading.Thread(target=self._tick_loop, name="scheduler-tick", daemon=True)
        self._tick_thread.start()
        self._logger.update_status(f"Scheduler started (every {self._check_interval:g}s)", SOURCE)
        return True

    def stop(self) -> None:
        """Stop ticking. Runs already in flight finish on their own."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()

        if self._tick_thread and self._tick_thread.is_alive() \
                and self._tick_thread is not threading.current_thread():
            self._tick_thread.join(timeout=2.0)
        self._tick_thread = None
        self._logger.update_status("Scheduler stopped", SOURCE)

    def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                self._logger.log_error(f"Tick failed: {e}", SOURCE)
            self._stop_event.wait(self._check_interval)

    def tick(self, now: Optional[datetime] = None) -> List[threading.Thread]:
        """Dispatch every due task onto its own worker thread without waiting."""
        now = now or self._clock()
        with self._lock:
            due = [t for t in self._tasks if t.is_due(now) and t.id not in self._in_flight]
            for task in due:
                self._in_flight.add(task.id)

        threads: List[threading.Thread] = []
        for task in due:
            self._logger.log_info(f"Task due: {task.name}", SOURCE)
            worker = threading.Thread(
                target=self._run_dispatched,
                args=(task,),
                name=f"task-{task.name}",
                daemon=True,
            )
            worker.start()
            threads.append(worker)
        return threads

    def _run_dispatched(self, task: ScheduledTask) -> None:
        try:
            self.execute_task(task)
        except Exception as e:
            # execute_task already converts run failures; this guards observers and notification.
            self._logger.log_error(f"Task '{task.name}' crashed the worker: {e}", SOURCE)
        finally:
            with self._lock:
                self._in_flight.discard(task.id)

    # ----- execution ------------------------------------------------------------

    def execute_task(self, task: ScheduledTask) -> ExecutionRecord:
        """Run one task synchronously and record the outcome."""
        record = ExecutionRecord(
            task_id=task.id,
            task_name=task.name,
            script_path=task.script_path,
            start_time=self._clock(),
        )
        self._logger.log_info(f"Running task: {task.name} ({task.script_path})", SOURCE)
        self._fire_started(task)

        success = False
        error: Optional[str] = None
        try:
            success, error = self._script_runner(task)
            if not success and not error:
                error = "Script execution failed"
        except Exception as e:
            success, error = False, str(e) or type(e).__name__
            self._logger.log_error(f"Task '{task.name}' raised: {error}", SOURCE)
        finally:
            record.finish(success, None if success else error, end_time=self._clock())
            with self._lock:
                self._history.append(record)
                # update_task may have swapped in a new object while the run was in flight.
                live = self._find(task.id) or task
                live.last_run = record.start_time
                live.calculate_next_run(self._clock())

        level = self._logger.log_info if success else self._logger.log_error
        level(f"Task finished: {task.name} - {record.status_text} ({record.duration_text})", SOURCE)
        self._fire_completed(live, record)
        self._maybe_notify(live, record)
        return record

    def should_notify(self, task: ScheduledTask, record: ExecutionRecord, now: Optional[datetime] = None) -> bool:
        if not task.notify_on_completion:
            return False

        now = now or self._clock()
        if task.last_notification_time is not None:
            elapsed = now - task.last_notification_time
            if elapsed < timedelta(minutes=task.notify_interval_minutes):
                return False

        if task.notify_policy == NotificationPolicy.ON_ERROR:
            return not record.success
        if task.notify_policy == NotificationPolicy.ON_SUCCESS:
            return record.success
        return True

    def _maybe_notify(self, task: ScheduledTask, record: ExecutionRecord) -> None:
        now = self._clock()
        if not self.should_notify(task, record, now):
            return
        try:
            delivered = self._notifier.send(task, record)
        except Exception as e:
            self._logger.log_error(f"Notification for '{task.name}' raised: {e}", SOURCE)
            return
        if delivered:
            with self._lock:
                task.last_notification_time = now

    def _fire_started(self, task: ScheduledTask) -> None:
        if self._on_task_started:
            try:
                self._on_task_started(task)
            except Exception as e:
                self._logger.log_warning(f"task-started observer failed: {e}", SOURCE)

    def _fire_completed(self, task: ScheduledTask, record: ExecutionRecord) -> None:
        if self._on_task_completed:
            try:
                self._on_task_completed(task, record)
            except Exception as e:
                self._logger.log_warning(f"task-completed observer failed: {e}", SOURCE)
