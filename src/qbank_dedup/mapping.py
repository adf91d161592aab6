"""Source question -> target document field mapping.

Display names (course, author) are resolved through an explicit
``DisplayNames`` object handed in by the caller; nothing is cached globally.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .records import QuestionRecord, format_timestamp

SOURCE_COLLECTION = "questions"

FieldMapper = Callable[[QuestionRecord], Dict[str, Any]]


@dataclass
class DisplayNames:
    courses: Dict[str, str] = field(default_factory=dict)
    users: Dict[str, str] = field(default_factory=dict)

    def course_name(self, record: QuestionRecord) -> str:
        if not record.course_id:
            return ""
        return self.courses.get(record.course_id, "")

    def author_name(self, record: QuestionRecord) -> str:
        return self.users.get(record.author_id, "") if record.author_id else ""

    @classmethod
    def load(cls, path: str | Path | None) -> "DisplayNames":
        if not path or not Path(path).exists():
            return cls()
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(courses=dict(data.get("courses") or {}), users=dict(data.get("users") or {}))


def map_question_fields(
    source: QuestionRecord,
    course_name: str = "",
    teacher_name: str = "",
    synced_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build the target-shaped document for ``source``."""
    if not isinstance(source.options, list):
        raise TypeError(f"options must be a list, got {type(source.options).__name__}")
    now = synced_at or datetime.now(timezone.utc)
    return {
        "questionText": source.text or "",
        "options": list(source.options),
        "correctAnswer": source.correct_answer or "",
        "explanation": source.explanation or "",
        "subject": source.subject,
        "course": course_name or source.course,
        "chapter": source.chapter,
        "topic": source.topic,
        "difficulty": source.difficulty or "Medium",
        "year": source.year,
        "book": source.book,
        "teacher": teacher_name,
        "enableExplanation": True,
        "status": "published",
        "isDeleted": False,
        "type": source.type or "multiple-choice",
        # Sync metadata
        "syncedFrom": source.id,
        "syncedAt": format_timestamp(now),
        "sourceCollection": SOURCE_COLLECTION,
        "createdAt": format_timestamp(now),
        "updatedAt": format_timestamp(now),
    }


class QuestionMapper:
    """Default FieldMapper: ``map_question_fields`` with names from ``DisplayNames``."""

    def __init__(self, names: Optional[DisplayNames] = None) -> None:
        self.names = names or DisplayNames()

    def __call__(self, record: QuestionRecord) -> Dict[str, Any]:
        return map_question_fields(
            record,
            course_name=self.names.course_name(record),
            teacher_name=self.names.author_name(record),
        )
