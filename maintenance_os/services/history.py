# maintenance_os/services/history.py
"""
Bounded in-memory audit history for trend and digest purposes.

This is a cache owned by the composition root; the Result Store stays the
source of truth. Entries are kept per target in a ring of `limit` items.
"""
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from ..schemas import AuditResult, UptimeResult


class AuditHistory:
    def __init__(self, limit: int = 100) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._entries: Dict[str, Deque[AuditResult]] = defaultdict(lambda: deque(maxlen=self.limit))
        self._uptime: Dict[str, UptimeResult] = {}

    def record(self, result: AuditResult) -> None:
        self._entries[result.target_id].append(result)

    def for_target(self, target_id: str) -> List[AuditResult]:
        """Oldest first."""
        return list(self._entries.get(target_id, ()))

    def previous(self, target_id: str) -> Optional[AuditResult]:
        entries = self._entries.get(target_id)
        return entries[-1] if entries else None

    def since(self, timestamp_ms: int) -> List[AuditResult]:
        """All entries strictly newer than `timestamp_ms`, oldest first."""
        recent = [r for entries in self._entries.values() for r in entries if r.timestamp > timestamp_ms]
        return sorted(recent, key=lambda r: (r.timestamp, r.target_id))

    def last_uptime(self, target_id: str) -> Optional[UptimeResult]:
        """Last status seen by the uptime check; audits do not update it."""
        return self._uptime.get(target_id)

    def record_uptime(self, target_id: str, uptime: UptimeResult) -> None:
        self._uptime[target_id] = uptime

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
