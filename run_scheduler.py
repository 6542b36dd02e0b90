"""
Run the scheduler in the foreground until interrupted.

Usage:
    python run_scheduler.py scheduled_tasks.json [--settings settings.json]
"""

from __future__ import annotations

import sys
import threading
from typing import List, Optional

from autoscript import SettingsManager, SettingsVariableProvider, StatusLogger, TemplateExpander
from autoscript.scheduling import EngineScriptRunner, SchedulerEngine, TaskStoreError, WebhookNotifier
from run_script import parse_args


def main(argv: Optional[List[str]] = None) -> int:
    tasks_path, settings_path = parse_args(sys.argv[1:] if argv is None else argv)
    if tasks_path is None:
        print("Usage: run_scheduler.py <tasks.json> [--settings PATH]")
        return 2

    settings_manager = SettingsManager(settings_path)
    settings = settings_manager.load()
    logger = StatusLogger(max_entries=settings.log_max_entries)
    logger.add_listener(lambda entry: print(entry))
    expander = TemplateExpander(
        variable_provider=SettingsVariableProvider(settings_manager),
        logger=logger,
    )

    scheduler = SchedulerEngine(
        script_runner=EngineScriptRunner(logger=logger, expander=expander),
        notifier=WebhookNotifier(default_url=settings.default_webhook_url, logger=logger),
        logger=logger,
        check_interval=settings.scheduler_check_interval_seconds,
        max_history=settings.max_history,
    )
    try:
        scheduler.load_tasks(tasks_path)
    except TaskStoreError as e:
        print(f"Failed to load tasks: {e}")
        return 2

    for task in scheduler.tasks:
        print(f"  {task.name}: {task.get_description()} -> next {task.next_run}")

    scheduler.start()
    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        print("Stopping scheduler...")
    finally:
        scheduler.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
