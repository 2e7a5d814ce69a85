"""
Query History

Per-viewer log of executed queries, capped at a fixed capacity with the oldest
entries evicted first. Filtering returns a fresh view and never touches the
log itself.
"""

from collections import deque
from typing import List, Optional, Union

from loadsim.models.metrics import QueryKind
from loadsim.models.queries import HistoryEntry

DEFAULT_HISTORY_CAPACITY = 100

# Kind filter value meaning "every kind"
ALL_KINDS = "all"


class QueryHistory:
    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[HistoryEntry] = deque(maxlen=capacity)

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> List[HistoryEntry]:
        """All entries, newest first."""
        return list(reversed(self._entries))

    def filter(
        self,
        kind: Optional[Union[str, QueryKind]] = None,
        search: Optional[str] = None,
    ) -> List[HistoryEntry]:
        """
        Entries matching both filters, newest first.

        Args:
            kind: Exact query kind; None or "all" matches every kind
            search: Case-insensitive substring of the query text
        """
        if isinstance(kind, QueryKind):
            kind = kind.value
        kind = (kind or "").strip()
        if kind.lower() == ALL_KINDS:
            kind = ""
        needle = (search or "").strip().lower()

        results = []
        for entry in reversed(self._entries):
            if kind and entry.kind.value != kind.upper():
                continue
            if needle and needle not in entry.query_text.lower():
                continue
            results.append(entry)
        return results

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
