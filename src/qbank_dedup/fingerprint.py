"""Exact-match fingerprints and the target fingerprint index.

A fingerprint is the SHA-1 of normalized question text and normalized
correct answer joined by a unit separator. Normalization turns every
whitespace/control character into a plain space, so the separator can never
appear inside either half.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .normalize import NormalizationLog, normalize_text
from .records import QuestionRecord

_SEPARATOR = "\x1f"


def fingerprint_normalized(norm_text: str, norm_answer: str) -> str:
    combined = f"{norm_text}{_SEPARATOR}{norm_answer}"
    return hashlib.sha1(combined.encode("utf-8")).hexdigest()


def fingerprint(text, correct_answer, log: Optional[NormalizationLog] = None) -> str:
    """Deterministic 160-bit hex digest of (normalize(text), normalize(answer))."""
    return fingerprint_normalized(
        normalize_text(text, log, context="questionText"),
        normalize_text(correct_answer, log, context="correctAnswer"),
    )


def record_fingerprint(record: QuestionRecord, log: Optional[NormalizationLog] = None) -> str:
    return fingerprint(record.text, record.correct_answer, log)


@dataclass
class FingerprintIndex:
    """fingerprint -> target id, built in one pass over the comparison set.

    When several targets share a fingerprint the first one seen wins; all ids
    are still kept in ``collisions`` for reporting.
    """
    by_fingerprint: Dict[str, str] = field(default_factory=dict)
    collisions: Dict[str, List[str]] = field(default_factory=dict)

    def add(self, record_id: str, fp: str) -> None:
        if fp in self.by_fingerprint:
            self.collisions.setdefault(fp, [self.by_fingerprint[fp]]).append(record_id)
            return
        self.by_fingerprint[fp] = record_id

    def lookup(self, fp: str) -> Optional[str]:
        return self.by_fingerprint.get(fp)

    def __contains__(self, fp: str) -> bool:
        return fp in self.by_fingerprint

    def __len__(self) -> int:
        return len(self.by_fingerprint)

    @classmethod
    def build(
        cls, records: Iterable[QuestionRecord], log: Optional[NormalizationLog] = None
    ) -> "FingerprintIndex":
        index = cls()
        for rec in records:
            if rec.is_deleted:
                continue
            index.add(rec.id, record_fingerprint(rec, log))
        return index
