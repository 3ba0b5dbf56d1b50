"""
Shared sync result type.

SyncResult: structured return type for offline queue replays, consumed by
the fasting client and the sync_offline_queue management command.
"""

from dataclasses import dataclass


@dataclass
class SyncResult:
    """Structured result from a sync pass."""

    source: str
    success: bool = True
    synced: int = 0
    retried: int = 0
    dropped: int = 0
    skipped: bool = False
    error_message: str = ""

    @property
    def total(self):
        return self.synced + self.retried + self.dropped

    @property
    def summary(self):
        if not self.success:
            return f"Failed: {self.error_message}"
        if self.skipped:
            return "Skipped: offline, empty queue or sync already running"
        parts = []
        if self.synced:
            parts.append(f"{self.synced} synced")
        if self.retried:
            parts.append(f"{self.retried} will retry")
        if self.dropped:
            parts.append(f"{self.dropped} dropped")
        return ", ".join(parts) if parts else "No actions processed"
