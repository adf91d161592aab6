"""Question record model shared by stores, classifier and synchronizer.

Stored documents use the question bank's camelCase keys (questionText,
correctAnswer, isSynced, ...). The engine never rewrites question content;
only the lifecycle fields (is_deleted, is_synced, synced_at, synced_to_id)
change during a sync.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings, epoch seconds or datetimes into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class QuestionRecord:
    id: str
    text: Any = ""  # raw, possibly HTML; may be malformed in legacy data
    options: List[Any] = field(default_factory=list)
    correct_answer: Any = ""
    explanation: Optional[str] = None
    subject: str = ""
    chapter: str = ""
    topic: str = ""
    difficulty: str = ""
    status: str = ""
    course_id: str = ""
    course: str = ""
    created_by: str = ""
    created_at: Optional[datetime] = None
    year: str = ""
    book: str = ""
    type: str = ""
    is_deleted: bool = False
    is_synced: bool = False
    synced_at: Optional[datetime] = None
    synced_to_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def author_id(self) -> str:
        return self.created_by or str(self.extra.get("teacherId", "") or "")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], record_id: Optional[str] = None) -> "QuestionRecord":
        known = {
            "id", "questionText", "text", "options", "correctAnswer", "explanation",
            "subject", "chapter", "topic", "difficulty", "status", "courseId", "course",
            "createdBy", "createdAt", "year", "book", "type", "isDeleted", "isSynced",
            "syncedAt", "syncedToId",
        }
        text = data.get("questionText")
        if text is None:
            text = data.get("text", "")
        return cls(
            id=str(record_id if record_id is not None else data.get("id", "")),
            text=text,
            options=list(data.get("options") or []),
            correct_answer=data.get("correctAnswer", ""),
            explanation=data.get("explanation"),
            subject=data.get("subject") or "",
            chapter=data.get("chapter") or "",
            topic=data.get("topic") or "",
            difficulty=data.get("difficulty") or "",
            status=data.get("status") or "",
            course_id=data.get("courseId") or "",
            course=data.get("course") or "",
            created_by=data.get("createdBy") or "",
            created_at=parse_timestamp(data.get("createdAt")),
            year=str(data.get("year") or ""),
            book=data.get("book") or "",
            type=data.get("type") or "",
            is_deleted=bool(data.get("isDeleted", False)),
            is_synced=data.get("isSynced") is True,
            synced_at=parse_timestamp(data.get("syncedAt")),
            synced_to_id=data.get("syncedToId"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        out.update(
            {
                "id": self.id,
                "questionText": self.text,
                "options": list(self.options),
                "correctAnswer": self.correct_answer,
                "explanation": self.explanation,
                "subject": self.subject,
                "chapter": self.chapter,
                "topic": self.topic,
                "difficulty": self.difficulty,
                "status": self.status,
                "courseId": self.course_id,
                "course": self.course,
                "createdBy": self.created_by,
                "createdAt": format_timestamp(self.created_at),
                "year": self.year,
                "book": self.book,
                "type": self.type,
                "isDeleted": self.is_deleted,
                "isSynced": self.is_synced,
                "syncedAt": format_timestamp(self.synced_at),
                "syncedToId": self.synced_to_id,
            }
        )
        return out
