"""
Small CLI to run an automation script JSON file once.

Usage:
    python run_script.py scripts/report/script.rpa.json [--settings settings.json]

Exit code: 0 on success, 1 when the script failed, 2 on usage or load errors.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional, Tuple

from autoscript import (
    ScriptEngine,
    ScriptLoadError,
    SettingsManager,
    SettingsVariableProvider,
    StatusLogger,
    TemplateExpander,
)


def parse_args(argv: List[str]) -> Tuple[Optional[Path], Optional[Path]]:
    """Returns (target, settings path); target is None on a usage error."""
    target: Optional[Path] = None
    settings: Optional[Path] = None
    args = iter(argv)
    for arg in args:
        if arg == "--settings":
            value = next(args, None)
            if value is None:
                return None, None
            settings = Path(value)
        elif target is None:
            target = Path(arg)
        else:
            return None, None
    return target, settings


def main(argv: Optional[List[str]] = None) -> int:
    target, settings_path = parse_args(sys.argv[1:] if argv is None else argv)
    if target is None:
        print("Usage: run_script.py <script.json> [--settings PATH]")
        return 2

    settings_manager = SettingsManager(settings_path)
    settings = settings_manager.load()
    logger = StatusLogger(max_entries=settings.log_max_entries)
    logger.add_listener(lambda entry: print(entry))
    expander = TemplateExpander(
        variable_provider=SettingsVariableProvider(settings_manager),
        logger=logger,
    )

    engine = ScriptEngine(logger=logger, expander=expander)
    try:
        engine.load_from_file(target)
    except ScriptLoadError as e:
        print(f"Failed to load script: {e}")
        return 2

    engine.on_completed(lambda ok: print(f"DONE: {ok}" + ("" if ok else f" - {engine.first_error}")))
    return 0 if engine.run() else 1


if __name__ == "__main__":
    raise SystemExit(main())
