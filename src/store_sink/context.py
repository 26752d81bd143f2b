"""
Host-side scheduling surface handed to the sink task.
"""

from __future__ import annotations

from typing import Optional, Protocol


class SinkTaskContext(Protocol):
    """What the task may ask of its host."""

    def timeout(self, timeout_ms: int) -> None:
        """Ask the host to wait at least timeout_ms before the next put()."""
        ...


class LocalTaskContext:
    """In-process context: remembers the last requested delay until consumed."""

    def __init__(self) -> None:
        self._timeout_ms: Optional[int] = None

    def timeout(self, timeout_ms: int) -> None:
        self._timeout_ms = timeout_ms

    @property
    def requested_timeout_ms(self) -> Optional[int]:
        return self._timeout_ms

    def consume_timeout(self) -> int:
        """Return and clear the pending delay (0 when none was requested)."""
        ms, self._timeout_ms = self._timeout_ms, None
        return ms or 0
