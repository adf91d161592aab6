"""Storage interfaces and adapters.

The engine only needs four operations:
- source: filtered read, mark-synced update (one write group per call)
- target: bulk read, insert (one write group per call)

Adapters translate store-specific query rejections into QueryCapabilityError
so that core logic never sees backend exceptions.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from .errors import QueryCapabilityError
from .records import QuestionRecord, format_timestamp

logger = logging.getLogger(__name__)

# Per-commit operation limit of the backing store (Firestore-style batches)
DEFAULT_MAX_WRITE_GROUP = 500


@dataclass
class SourceFilter:
    subject: Optional[str] = None
    chapter: Optional[str] = None
    difficulty: Optional[str] = None
    status: Optional[str] = "published"
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    only_unsynced: bool = True

    def equality_fields(self) -> Dict[str, str]:
        fields = {
            "subject": self.subject,
            "chapter": self.chapter,
            "difficulty": self.difficulty,
            "status": self.status,
        }
        return {k: v for k, v in fields.items() if v}

    def describe(self) -> Dict[str, Any]:
        out: Dict[str, Any] = self.equality_fields()
        if self.from_date:
            out["fromDate"] = self.from_date.isoformat()
        if self.to_date:
            out["toDate"] = self.to_date.isoformat()
        out["onlyUnsynced"] = self.only_unsynced
        return out

    def matches(self, record: QuestionRecord) -> bool:
        if record.is_deleted:
            return False
        if self.only_unsynced and record.is_synced:
            return False
        for name, value in self.equality_fields().items():
            if getattr(record, name) != value:
                return False
        if self.from_date or self.to_date:
            if record.created_at is None:
                return False
            if self.from_date and record.created_at < datetime.combine(self.from_date, time.min, timezone.utc):
                return False
            # to_date is inclusive of the whole day
            if self.to_date and record.created_at > datetime.combine(self.to_date, time.max, timezone.utc):
                return False
        return True


@dataclass
class SourceUpdate:
    record_id: str
    synced_to_id: str
    synced_at: datetime


class SourceStore(Protocol):
    def query(self, criteria: SourceFilter) -> List[QuestionRecord]: ...

    def mark_synced(self, updates: Sequence[SourceUpdate]) -> None: ...


class TargetStore(Protocol):
    def read_all(self) -> List[QuestionRecord]: ...

    def new_id(self) -> str: ...

    def insert(self, docs: Sequence[Tuple[str, Dict[str, Any]]]) -> None: ...


class InMemoryStore:
    """Dict-backed store usable as source and target.

    Args:
        docs: Initial documents keyed by id (values use stored camelCase keys)
        indexed_fields: When set, a query combining a date range with an
            equality filter on a field outside this set is rejected, the way a
            store without the needed composite index would reject it
        max_write_group: Maximum operations accepted by one commit
    """

    def __init__(
        self,
        docs: Optional[Dict[str, Dict[str, Any]]] = None,
        indexed_fields: Optional[Set[str]] = None,
        max_write_group: int = DEFAULT_MAX_WRITE_GROUP,
    ) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (docs or {}).items()}
        self.indexed_fields = indexed_fields
        self.max_write_group = max_write_group

    @classmethod
    def from_records(cls, records: Iterable[QuestionRecord], **kwargs) -> "InMemoryStore":
        return cls({r.id: r.to_dict() for r in records}, **kwargs)

    def get(self, record_id: str) -> QuestionRecord:
        return QuestionRecord.from_dict(self.docs[record_id], record_id)

    def records(self) -> List[QuestionRecord]:
        return [QuestionRecord.from_dict(d, k) for k, d in self.docs.items()]

    def _check_capability(self, criteria: SourceFilter) -> None:
        if self.indexed_fields is None or not (criteria.from_date or criteria.to_date):
            return
        missing = sorted(set(criteria.equality_fields()) - self.indexed_fields)
        if missing:
            fields = ", ".join(missing + ["createdAt"])
            raise QueryCapabilityError(
                "The query requires an index on " + fields,
                remediation=f"create a composite index on ({fields})",
            )

    def query(self, criteria: SourceFilter) -> List[QuestionRecord]:
        self._check_capability(criteria)
        return [r for r in self.records() if criteria.matches(r)]

    def read_all(self) -> List[QuestionRecord]:
        return [r for r in self.records() if not r.is_deleted]

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    def _check_group(self, size: int) -> None:
        if size > self.max_write_group:
            raise ValueError(f"write group of {size} exceeds the limit of {self.max_write_group} operations")

    def insert(self, docs: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        self._check_group(len(docs))
        for doc_id, doc in docs:
            self.docs[doc_id] = dict(doc)
        self._committed()

    def mark_synced(self, updates: Sequence[SourceUpdate]) -> None:
        self._check_group(len(updates))
        unknown = [u.record_id for u in updates if u.record_id not in self.docs]
        if unknown:
            raise KeyError(f"unknown source questions: {unknown}")
        for u in updates:
            doc = self.docs[u.record_id]
            doc["isSynced"] = True
            doc["syncedAt"] = format_timestamp(u.synced_at)
            doc["syncedToId"] = u.synced_to_id
        self._committed()

    def _committed(self) -> None:
        pass


def write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class JsonFileStore(InMemoryStore):
    """InMemoryStore persisted to a JSON file after every commit.

    The file holds either a list of documents with an ``id`` key or an object
    mapping ids to documents. It is always written back as the mapping form.
    """

    def __init__(self, path: str | Path, **kwargs) -> None:
        self.path = Path(path)
        super().__init__(self._load(self.path), **kwargs)

    @staticmethod
    def _load(path: Path) -> Dict[str, Dict[str, Any]]:
        if not path.exists():
            return {}
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, list):
            return {str(d["id"]): d for d in data}
        if isinstance(data, dict):
            return {str(k): v for k, v in data.items()}
        raise ValueError(f"{path}: expected a JSON list or object of questions")

    def _committed(self) -> None:
        write_json_atomic(self.path, self.docs)
        logger.debug("Wrote %d questions to %s", len(self.docs), self.path)
