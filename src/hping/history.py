from collections import deque

from .metrics import compute_statistics
from .models import RequestOutcome, Statistics


class History:
    """Bounded, FIFO-evicted record of one target's most recent outcomes."""

    def __init__(self, retention: int):
        if retention < 1:
            raise ValueError("history retention must be at least 1")
        self.retention = retention
        self._entries: deque[RequestOutcome] = deque(maxlen=retention)
        self.recorded = 0

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, outcome: RequestOutcome) -> None:
        self._entries.append(outcome)
        self.recorded += 1

    def last(self) -> RequestOutcome | None:
        return self._entries[-1] if self._entries else None

    def snapshot(self, limit: int | None = None) -> list[RequestOutcome]:
        """Most recent `limit` entries (all retained entries by default), oldest first."""
        entries = list(self._entries)
        if limit is None or limit >= len(entries):
            return entries
        if limit <= 0:
            return []
        return entries[-limit:]

    def statistics(self, limit: int | None = None) -> Statistics:
        return compute_statistics(self.snapshot(limit))
