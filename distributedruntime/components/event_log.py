"""
Append-only in-memory event log.

One writer appends at a time; any number of readers take snapshots without
locking. The log is published as an immutable (entries, length) view: an
append extends the backing list and then publishes a new view, so a reader
holding an older view simply sees a shorter prefix and never a torn entry.
"""

import threading
import time
from typing import Iterable, List, Optional, Tuple


def current_timestamp_ms() -> int:
    """Capture timestamp used as event prefix."""
    return int(time.time() * 1000)


def format_event(data: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Prefix data with its capture timestamp.

    Args:
        data: Event data
        timestamp_ms: Timestamp in milliseconds (now if omitted)

    Returns:
        Event string ``"<timestamp>: <data>"``
    """
    if timestamp_ms is None:
        timestamp_ms = current_timestamp_ms()
    return f"{timestamp_ms}: {data}"


class EventLog:
    """
    Ordered, append-only sequence of event strings.

    Attributes:
        _view: Published (backing list, visible length) pair
    """

    def __init__(self, entries: Iterable[str] = ()):
        initial = list(entries)
        self._view: Tuple[List[str], int] = (initial, len(initial))
        self._write_lock = threading.Lock()

    def append(self, entry: str) -> int:
        """
        Append an entry.

        Args:
            entry: Event string

        Returns:
            Index of the appended entry
        """
        with self._write_lock:
            entries, length = self._view
            entries.append(entry)
            self._view = (entries, length + 1)
            return length

    def record(self, data: str, timestamp_ms: Optional[int] = None) -> Tuple[int, str]:
        """
        Append data prefixed with its capture timestamp.

        Args:
            data: Event data
            timestamp_ms: Timestamp in milliseconds (now if omitted)

        Returns:
            Tuple of (index, stored event string)
        """
        entry = format_event(data, timestamp_ms)
        return self.append(entry), entry

    def replace(self, entries: Iterable[str]) -> None:
        """
        Replace the whole log at once.

        Readers see either the old log or the new one, never a mix.

        Args:
            entries: New log contents
        """
        fresh = list(entries)
        with self._write_lock:
            self._view = (fresh, len(fresh))

    def snapshot(self) -> Tuple[str, ...]:
        """Get a consistent copy of the log."""
        entries, length = self._view
        return tuple(entries[:length])

    def __len__(self) -> int:
        return self._view[1]
