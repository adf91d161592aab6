"""Migration mode: the caller-facing commands around classification and sync.

A ``SyncSession`` holds all per-run state explicitly (loaded questions,
verdicts, selection, display names) so several sessions over disjoint
questions can coexist in one process.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from .config import EngineConfig
from .detect_duplicates import STATUS_SIMILAR, ClassificationReport, DuplicateClassifier
from .ledger import SyncConfig, SyncHistoryEntry, SyncLedger
from .mapping import FieldMapper, QuestionMapper
from .normalize import NormalizationLog
from .records import QuestionRecord
from .store import SourceFilter, SourceStore, TargetStore
from .sync import BatchSynchronizer, Notifier, SyncProgress, SyncResult

logger = logging.getLogger(__name__)


class SyncSession:
    def __init__(
        self,
        source: SourceStore,
        target: TargetStore,
        ledger: SyncLedger,
        config: Optional[EngineConfig] = None,
        mapper: Optional[FieldMapper] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.source = source
        self.target = target
        self.ledger = ledger
        self.config = config or EngineConfig()
        self.mapper = mapper or QuestionMapper()
        self.notifier = notifier
        self.criteria = SourceFilter()
        self.records: List[QuestionRecord] = []
        self.report = ClassificationReport()
        self.selected: set = set()
        self.include_similar = False
        self.log = NormalizationLog()
        self._synchronizer: Optional[BatchSynchronizer] = None

    def analyze(self, criteria: Optional[SourceFilter] = None) -> ClassificationReport:
        """Load the filtered source questions, classify them, and select the new ones.

        Both reads finish before any question is classified. Read failures
        (including QueryCapabilityError) propagate and leave the session unchanged.
        """
        criteria = criteria or SourceFilter()
        records = self.source.query(criteria)
        targets = self.target.read_all()
        log = NormalizationLog()
        classifier = DuplicateClassifier(
            self.config.thresholds(),
            method=self.config.similarity_method,
            min_similarity_length=self.config.min_similarity_length,
            length_ratio=self.config.length_ratio(),
            log=log,
        ).prepare(targets)
        self.report = classifier.classify(records)
        self.criteria = criteria
        self.records = records
        self.log = log
        self.select_all_new()
        return self.report

    @property
    def counts(self) -> Dict[str, int]:
        return self.report.counts

    def select_all_new(self) -> List[str]:
        self.selected = set(self.report.default_selection(self.include_similar))
        return self.selected_ids()

    def toggle_include_similar(self, value: Optional[bool] = None) -> bool:
        self.include_similar = (not self.include_similar) if value is None else bool(value)
        similar = set(self.report.ids_with_status(STATUS_SIMILAR))
        if self.include_similar:
            self.selected |= similar
        else:
            self.selected -= similar
        return self.include_similar

    def toggle(self, record_id: str) -> bool:
        if record_id in self.selected:
            self.selected.discard(record_id)
            return False
        self.selected.add(record_id)
        return True

    def selected_ids(self) -> List[str]:
        return [r.id for r in self.records if r.id in self.selected]

    def selected_records(self) -> List[QuestionRecord]:
        return [r for r in self.records if r.id in self.selected]

    def _make_synchronizer(self) -> BatchSynchronizer:
        self._synchronizer = BatchSynchronizer(
            self.source,
            self.target,
            self.ledger,
            self.mapper,
            batch_size=self.config.batch_size,
            retry=self.config.retry_policy(),
            notifier=self.notifier,
        )
        return self._synchronizer

    def iter_sync(self) -> Iterator[SyncProgress]:
        if not self.selected:
            raise ValueError("No questions selected for sync")
        sync = self._make_synchronizer()
        return sync.iter_run(
            self.selected_records(),
            verdicts=self.report.by_id(),
            include_similar=self.include_similar,
            only_unsynced=self.criteria.only_unsynced,
            filter_criteria=self.criteria.describe(),
        )

    def start_sync(self, on_progress: Optional[Callable[[SyncProgress], Any]] = None) -> SyncResult:
        for snapshot in self.iter_sync():
            if on_progress is not None:
                on_progress(snapshot)
        assert self._synchronizer is not None and self._synchronizer.result is not None
        result = self._synchronizer.result
        # Synced questions leave the working set
        self.records, self.selected, self.report = [], set(), ClassificationReport()
        return result

    def cancel(self) -> None:
        if self._synchronizer is not None:
            self._synchronizer.cancel()

    def sync_config(self) -> SyncConfig:
        return self.ledger.load_config()

    def history(self, limit: int = 10) -> List[SyncHistoryEntry]:
        return self.ledger.history(limit)
