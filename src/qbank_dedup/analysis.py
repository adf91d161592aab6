"""Analysis mode: find repeated and structurally broken questions in one collection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .clusters import Cluster, build_clusters
from .comparator import ContentReviewer, GuardedComparator, SemanticComparator
from .config import EngineConfig
from .normalize import NormalizationLog
from .quality import QualityReport, analyze_quality
from .store import SourceFilter, SourceStore

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    total: int
    clusters: List[Cluster] = field(default_factory=list)
    quality: List[QualityReport] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    comparator_available: bool = False


@dataclass
class ChapterAnalysis:
    subject: str
    by_chapter: Dict[str, AnalysisResult] = field(default_factory=dict)

    @property
    def total_processed(self) -> int:
        return sum(r.total for r in self.by_chapter.values())

    @property
    def all_groups(self) -> List[List[str]]:
        return [c.member_ids for r in self.by_chapter.values() for c in r.clusters]


def analyze_collection(
    store: SourceStore,
    criteria: SourceFilter,
    config: Optional[EngineConfig] = None,
    comparator: Optional[SemanticComparator] = None,
    reviewer: Optional[ContentReviewer] = None,
    check_quality: bool = False,
) -> AnalysisResult:
    """Cluster duplicates (and optionally check quality) within one filtered comparison set.

    A QueryCapabilityError from the store propagates; comparator and reviewer
    failures are absorbed.
    """
    config = config or EngineConfig()
    records = store.query(criteria)
    log = NormalizationLog()
    guard = GuardedComparator(comparator) if comparator is not None else None
    clusters = build_clusters(
        records,
        threshold=config.duplicate_threshold,
        method=config.similarity_method,
        comparator=guard,
        length_ratio=config.bucket_length_ratio,
        log=log,
    )
    quality: List[QualityReport] = []
    if check_quality:
        quality = analyze_quality(records, config.expected_options, reviewer)
    return AnalysisResult(
        total=len(records),
        clusters=clusters,
        quality=quality,
        warnings=list(log.warnings),
        comparator_available=bool(guard and guard.available),
    )


def analyze_chapters(
    store: SourceStore,
    subject: str,
    chapters: Sequence[str],
    config: Optional[EngineConfig] = None,
    comparator: Optional[SemanticComparator] = None,
    reviewer: Optional[ContentReviewer] = None,
    check_quality: bool = False,
) -> ChapterAnalysis:
    """Run ``analyze_collection`` once per chapter, sequentially."""
    if not subject or not chapters:
        raise ValueError("Subject and at least one chapter are required")
    result = ChapterAnalysis(subject)
    for chapter in chapters:
        criteria = SourceFilter(subject=subject, chapter=chapter, status=None, only_unsynced=False)
        result.by_chapter[chapter] = analyze_collection(
            store, criteria, config, comparator, reviewer, check_quality
        )
        logger.info(
            "Chapter %r: %d questions, %d clusters",
            chapter, result.by_chapter[chapter].total, len(result.by_chapter[chapter].clusters),
        )
    return result
