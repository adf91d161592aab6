"""Persisted sync state: process-wide SyncConfig plus the run history."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .records import format_timestamp, parse_timestamp
from .store import write_json_atomic

DEFAULT_HISTORY_LIMIT = 10


@dataclass
class SyncConfig:
    last_sync_date: Optional[datetime] = None
    total_synced: int = 0
    last_sync_subjects: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastSyncDate": format_timestamp(self.last_sync_date),
            "totalSynced": self.total_synced,
            "lastSyncSubjects": list(self.last_sync_subjects),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncConfig":
        return cls(
            last_sync_date=parse_timestamp(data.get("lastSyncDate")),
            total_synced=int(data.get("totalSynced") or 0),
            last_sync_subjects=list(data.get("lastSyncSubjects") or []),
        )


@dataclass
class SyncHistoryEntry:
    timestamp: datetime
    count: int
    filter_criteria: Dict[str, Any]
    status: str  # success | partial | failed
    errors: List[str] = field(default_factory=list)
    subjects: List[str] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "syncedAt": format_timestamp(self.timestamp),
            "questionsCount": self.count,
            "filterCriteria": self.filter_criteria,
            "status": self.status,
            "errors": list(self.errors),
            "subjects": list(self.subjects),
            "cancelled": self.cancelled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncHistoryEntry":
        return cls(
            timestamp=parse_timestamp(data.get("syncedAt")) or datetime.min,
            count=int(data.get("questionsCount") or 0),
            filter_criteria=dict(data.get("filterCriteria") or {}),
            status=data.get("status", "success"),
            errors=list(data.get("errors") or []),
            subjects=list(data.get("subjects") or []),
            cancelled=bool(data.get("cancelled", False)),
        )


class SyncLedger(Protocol):
    def load_config(self) -> SyncConfig: ...

    def save_config(self, config: SyncConfig) -> None: ...

    def append_history(self, entry: SyncHistoryEntry) -> None: ...

    def history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[SyncHistoryEntry]: ...


class InMemoryLedger:
    def __init__(self) -> None:
        self.config = SyncConfig()
        self.entries: List[SyncHistoryEntry] = []

    def load_config(self) -> SyncConfig:
        return SyncConfig(self.config.last_sync_date, self.config.total_synced, list(self.config.last_sync_subjects))

    def save_config(self, config: SyncConfig) -> None:
        self.config = config

    def append_history(self, entry: SyncHistoryEntry) -> None:
        self.entries.append(entry)

    def history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> List[SyncHistoryEntry]:
        """Newest first."""
        return list(reversed(self.entries))[:limit]


class JsonLedger(InMemoryLedger):
    """Ledger stored as {"config": {...}, "history": [...]} in one JSON file."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self.config = SyncConfig.from_dict(data.get("config") or {})
            self.entries = [SyncHistoryEntry.from_dict(d) for d in data.get("history") or []]

    def _flush(self) -> None:
        write_json_atomic(
            self.path,
            {"config": self.config.to_dict(), "history": [e.to_dict() for e in self.entries]},
        )

    def save_config(self, config: SyncConfig) -> None:
        super().save_config(config)
        self._flush()

    def append_history(self, entry: SyncHistoryEntry) -> None:
        super().append_history(entry)
        self._flush()
