"""Duplicate classification of source questions against a target set.

Verdicts (per source question, exactly one):
- duplicate: fingerprint hit (score 1), or best fuzzy score >= duplicate threshold
- similar: similar threshold <= best fuzzy score < duplicate threshold
- new: anything else
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .fingerprint import FingerprintIndex, fingerprint_normalized
from .normalize import NormalizationLog, normalize_text
from .records import QuestionRecord
from .similarity import CandidateBuckets, Scorer, best_match, default_length_ratio, get_scorer

logger = logging.getLogger(__name__)

STATUS_NEW = "new"
STATUS_DUPLICATE = "duplicate"
STATUS_SIMILAR = "similar"
STATUSES = (STATUS_NEW, STATUS_DUPLICATE, STATUS_SIMILAR)

DEFAULT_DUPLICATE_THRESHOLD = 0.92
DEFAULT_SIMILAR_THRESHOLD = 0.75
DEFAULT_MIN_SIMILARITY_LENGTH = 20


@dataclass(frozen=True)
class Thresholds:
    duplicate: float = DEFAULT_DUPLICATE_THRESHOLD
    similar: float = DEFAULT_SIMILAR_THRESHOLD

    def __post_init__(self) -> None:
        if not (0.0 <= self.similar < self.duplicate <= 1.0):
            raise ValueError(
                f"Thresholds must satisfy 0 <= similar < duplicate <= 1 "
                f"(got similar={self.similar}, duplicate={self.duplicate})"
            )

    def status_for(self, score: float) -> str:
        if score >= self.duplicate:
            return STATUS_DUPLICATE
        if score >= self.similar:
            return STATUS_SIMILAR
        return STATUS_NEW


@dataclass
class DuplicateVerdict:
    source_id: str
    status: str
    matched_target_id: Optional[str] = None
    similarity_score: float = 0.0
    match_reason: str = "no-match"  # fingerprint | similarity | short-text | no-match


@dataclass
class ClassificationReport:
    verdicts: List[DuplicateVerdict] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        counts = {status: 0 for status in STATUSES}
        for v in self.verdicts:
            counts[v.status] += 1
        return counts

    def by_id(self) -> Dict[str, DuplicateVerdict]:
        return {v.source_id: v for v in self.verdicts}

    def ids_with_status(self, *statuses: str) -> List[str]:
        return [v.source_id for v in self.verdicts if v.status in statuses]

    def default_selection(self, include_similar: bool = False) -> List[str]:
        """Auto-select every new question; similar ones only on request; never duplicates."""
        if include_similar:
            return self.ids_with_status(STATUS_NEW, STATUS_SIMILAR)
        return self.ids_with_status(STATUS_NEW)


class DuplicateClassifier:
    """Classify source questions against a prepared target set.

    ``prepare`` must run before any ``classify`` call: it reads the whole
    target set once to build the fingerprint index and length buckets.
    """

    def __init__(
        self,
        thresholds: Optional[Thresholds] = None,
        method: str = "jaccard",
        scorer: Optional[Scorer] = None,
        min_similarity_length: int = DEFAULT_MIN_SIMILARITY_LENGTH,
        length_ratio: Optional[float] = None,
        log: Optional[NormalizationLog] = None,
    ) -> None:
        self.thresholds = thresholds or Thresholds()
        self.scorer = scorer or get_scorer(method)
        self.min_similarity_length = min_similarity_length
        if length_ratio is None:
            length_ratio = default_length_ratio(method if scorer is None else "", self.thresholds.similar)
        self.length_ratio = length_ratio
        self.log = log if log is not None else NormalizationLog()
        self.index: Optional[FingerprintIndex] = None
        self.buckets: Optional[CandidateBuckets] = None

    @property
    def prepared(self) -> bool:
        return self.index is not None

    def prepare(self, targets: Iterable[QuestionRecord]) -> "DuplicateClassifier":
        index = FingerprintIndex()
        buckets = CandidateBuckets(length_ratio=self.length_ratio)
        for rec in targets:
            if rec.is_deleted:
                continue
            norm_text = normalize_text(rec.text, self.log, context=f"target {rec.id}")
            norm_answer = normalize_text(rec.correct_answer, self.log, context=f"target {rec.id}")
            index.add(rec.id, fingerprint_normalized(norm_text, norm_answer))
            buckets.add(rec.id, norm_text)
        self.index = index
        self.buckets = buckets
        logger.info("Indexed %d target questions (%d fingerprints)", len(buckets), len(index))
        return self

    def classify_one(self, record: QuestionRecord) -> DuplicateVerdict:
        if self.index is None or self.buckets is None:
            raise RuntimeError("DuplicateClassifier.prepare() must be called before classify")
        norm_text = normalize_text(record.text, self.log, context=f"source {record.id}")
        norm_answer = normalize_text(record.correct_answer, self.log, context=f"source {record.id}")

        matched = self.index.lookup(fingerprint_normalized(norm_text, norm_answer))
        if matched is not None:
            return DuplicateVerdict(record.id, STATUS_DUPLICATE, matched, 1.0, "fingerprint")

        if len(norm_text) < self.min_similarity_length:
            return DuplicateVerdict(record.id, STATUS_NEW, None, 0.0, "short-text")

        best_id, best_score = best_match(norm_text, self.buckets, self.scorer)
        status = self.thresholds.status_for(best_score)
        # A similar or duplicate verdict always names its target
        if status == STATUS_NEW or best_id is None:
            return DuplicateVerdict(record.id, STATUS_NEW, None, best_score, "no-match")
        return DuplicateVerdict(record.id, status, best_id, best_score, "similarity")

    def classify(self, sources: Iterable[QuestionRecord]) -> ClassificationReport:
        report = ClassificationReport([self.classify_one(rec) for rec in sources])
        counts = report.counts
        logger.info(
            "Classified %d questions: new=%d duplicate=%d similar=%d",
            len(report.verdicts), counts[STATUS_NEW], counts[STATUS_DUPLICATE], counts[STATUS_SIMILAR],
        )
        return report


def classify_records(
    sources: Iterable[QuestionRecord],
    targets: Iterable[QuestionRecord],
    thresholds: Optional[Thresholds] = None,
    **kwargs,
) -> ClassificationReport:
    """One-shot helper: prepare against ``targets`` then classify ``sources``."""
    return DuplicateClassifier(thresholds, **kwargs).prepare(targets).classify(sources)
