"""
Status Logger - collects log entries from the engine, the scheduler and steps.

SRP: This class has one responsibility - logging and status management.
One instance is created per process (or per test) and passed explicitly to
the components that need it.
"""

import threading
from datetime import datetime
from typing import Callable, List, Optional
from dataclasses import dataclass


DEBUG = "DEBUG"
INFO = "INFO"
WARNING = "WARNING"
ERROR = "ERROR"


@dataclass
class LogEntry:
    """
    Represents a single log entry.

    Clean Code: Simple data class with descriptive name and fields.
    """
    timestamp: datetime
    message: str
    level: str = INFO
    source: str = ""

    def __str__(self) -> str:
        time_str = self.timestamp.strftime("%H:%M:%S")
        if self.source:
            return f"[{time_str}] {self.level}: {self.source}: {self.message}"
        return f"[{time_str}] {self.level}: {self.message}"


class StatusLogger:
    """
    Manages status updates and maintains a bounded log history.

    Entries may arrive from several scheduler worker threads at once, so
    every mutation happens under an internal lock. Listeners are called
    outside the lock.
    """

    def __init__(self, max_entries: int = 500, min_level: str = DEBUG):
        """
        Initialize the logger.

        Args:
            max_entries: Maximum number of log entries to keep in memory
            min_level: Entries below this level are dropped
        """
        self._log_entries: List[LogEntry] = []
        self._max_entries = max_entries
        self._min_level = min_level
        self._current_status = "Ready"
        self._listeners: List[Callable[[LogEntry], None]] = []
        self._lock = threading.Lock()

    def log_debug(self, message: str, source: str = "") -> None:
        """Log a debug message."""
        self._add_entry(message, DEBUG, source)

    def log_info(self, message: str, source: str = "") -> None:
        """
        Log an informational message.

        Clean Code: Method name clearly describes what it does.
        """
        self._add_entry(message, INFO, source)

    def log_warning(self, message: str, source: str = "") -> None:
        """Log a warning message."""
        self._add_entry(message, WARNING, source)

    def log_error(self, message: str, source: str = "") -> None:
        """Log an error message."""
        self._add_entry(message, ERROR, source)

    def add_listener(self, callback: Callable[[LogEntry], None]) -> None:
        """Register a callback invoked for every accepted entry."""
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[LogEntry], None]) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def update_status(self, status: str, source: str = "") -> None:
        """
        Update the current status.

        Args:
            status: The new status message
            source: Optional source component
        """
        self._current_status = status
        self.log_info(status, source)

    def get_current_status(self) -> str:
        """Returns the current status message."""
        return self._current_status

    def get_recent_logs(self, count: int = 10) -> List[LogEntry]:
        """
        Get the most recent log entries.

        Args:
            count: Number of recent entries to return

        Returns:
            List of recent log entries
        """
        with self._lock:
            return self._log_entries[-count:]

    def get_all_logs(self) -> List[LogEntry]:
        """Returns all log entries."""
        with self._lock:
            return self._log_entries.copy()

    def clear_logs(self) -> None:
        """Clear all log entries."""
        with self._lock:
            self._log_entries.clear()
        self.log_info("Log history cleared")

    def _add_entry(self, message: str, level: str, source: str) -> None:
        """
        Add a new log entry.

        DRY: Centralized logic for adding entries.
        """
        if _LEVEL_ORDER[level] < _LEVEL_ORDER[self._min_level]:
            return

        entry = LogEntry(
            timestamp=datetime.now(),
            message=message,
            level=level,
            source=source,
        )

        with self._lock:
            self._log_entries.append(entry)

            # Trim old entries if we exceed max
            if len(self._log_entries) > self._max_entries:
                self._log_entries = self._log_entries[-self._max_entries:]
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(entry)
            except Exception:
                # A broken listener must not break the component that logged.
                pass

    def export_logs_to_file(self, filepath: str) -> bool:
        """
        Export all logs to a text file.

        Args:
            filepath: Path where the log file should be saved

        Returns:
            bool: True if export was successful
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                f.write("autoscript - Log Export\n")
                f.write(f"Generated: {datetime.now()}\n")
                f.write("=" * 50 + "\n\n")

                for entry in self.get_all_logs():
                    time_str = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
                    prefix = f"{entry.source}: " if entry.source else ""
                    f.write(f"[{time_str}] {entry.level}: {prefix}{entry.message}\n")

            return True
        except OSError as e:
            self.log_error(f"Failed to export logs: {e}", "Logger")
            return False


_LEVEL_ORDER = {DEBUG: 10, INFO: 20, WARNING: 30, ERROR: 40}

_default_logger: Optional[StatusLogger] = None


def get_default_logger() -> StatusLogger:
    """Fallback logger for steps that run without an engine-provided one."""
    global _default_logger
    if _default_logger is None:
        _default_logger = StatusLogger()
    return _default_logger
