"""Batch synchronizer: migrate selected source questions into the target.

States: idle -> selecting -> committing (once per batch) -> completed | aborted

Each batch stages two write groups, target inserts and source "mark synced"
updates, and commits them in that order with retries. Failures are isolated:
- a mapping error drops one question from its batch
- a commit failure (after retries) fails one batch; the run moves on

Progress is exposed as a pull-based iterator (``iter_run``) and, for
convenience, through a callback in ``run``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from tenacity import Retrying, before_sleep_log, stop_after_attempt, wait_exponential

from .detect_duplicates import STATUS_DUPLICATE, STATUS_SIMILAR, DuplicateVerdict
from .errors import BatchCommitFailure, MappingError
from .ledger import SyncHistoryEntry, SyncLedger
from .mapping import FieldMapper
from .records import QuestionRecord
from .store import SourceStore, SourceUpdate, TargetStore

logger = logging.getLogger(__name__)

# Two write groups per batch keep each commit far below a 500-operation limit
DEFAULT_BATCH_SIZE = 50

RUN_SUCCESS = "success"
RUN_PARTIAL = "partial"
RUN_FAILED = "failed"

Notifier = Callable[[List[str]], Any]


class SyncState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    COMMITTING = "committing"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class SyncProgress:
    processed: int = 0
    total: int = 0
    success: int = 0
    skipped: int = 0
    errors: int = 0
    batch_index: int = 0
    batch_count: int = 0

    @property
    def percent(self) -> int:
        if not self.total:
            return 100
        return round(self.processed / self.total * 100)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0

    def retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )


@dataclass
class SyncResult:
    state: SyncState
    progress: SyncProgress
    history: SyncHistoryEntry
    error_messages: List[str] = field(default_factory=list)
    failed_batches: List[int] = field(default_factory=list)
    target_ids: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return self.history.status


def run_status(success: int, errors: int) -> str:
    if errors == 0:
        return RUN_SUCCESS
    if success > 0:
        return RUN_PARTIAL
    return RUN_FAILED


def partition(records: Sequence[QuestionRecord], size: int) -> List[Sequence[QuestionRecord]]:
    return [records[i:i + size] for i in range(0, len(records), size)]


def should_skip(
    record: QuestionRecord,
    verdict: Optional[DuplicateVerdict],
    include_similar: bool,
    only_unsynced: bool,
) -> Optional[str]:
    """Reason for skipping ``record``, or None when it should be migrated."""
    if only_unsynced and record.is_synced:
        return "already synced"
    if verdict is None:
        return None
    if verdict.status == STATUS_DUPLICATE:
        return "duplicate"
    if verdict.status == STATUS_SIMILAR and not include_similar:
        return "similar"
    return None


class BatchSynchronizer:
    def __init__(
        self,
        source: SourceStore,
        target: TargetStore,
        ledger: SyncLedger,
        mapper: FieldMapper,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry: Optional[RetryPolicy] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.source = source
        self.target = target
        self.ledger = ledger
        self.mapper = mapper
        self.batch_size = batch_size
        self.retry = retry or RetryPolicy()
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = SyncState.IDLE
        self.result: Optional[SyncResult] = None
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop before the next batch; a batch already committing runs to completion."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _commit(self, fn: Callable[[], None]) -> None:
        for attempt in self.retry.retrying():
            with attempt:
                fn()

    def _stage(
        self, record: QuestionRecord, now: datetime
    ) -> Tuple[Tuple[str, Dict[str, Any]], SourceUpdate]:
        try:
            doc = self.mapper(record)
        except Exception as e:
            raise MappingError(record.id, e) from e
        target_id = self.target.new_id()
        return (target_id, doc), SourceUpdate(record.id, target_id, now)

    def iter_run(
        self,
        records: Sequence[QuestionRecord],
        verdicts: Optional[Mapping[str, DuplicateVerdict]] = None,
        include_similar: bool = False,
        only_unsynced: bool = True,
        filter_criteria: Optional[Dict[str, Any]] = None,
    ) -> Iterator[SyncProgress]:
        """Run the migration, yielding a progress snapshot after every batch.

        ``self.result`` holds the SyncResult once the iterator is exhausted.
        Committed records are marked synced in place, so running the same
        selection again with ``only_unsynced`` migrates nothing.
        """
        if self.state in (SyncState.SELECTING, SyncState.COMMITTING):
            raise RuntimeError("a sync run is already in progress")
        self._cancel.clear()
        self.result = None
        self.state = SyncState.SELECTING

        verdicts = verdicts or {}
        seen = set()
        selection: List[QuestionRecord] = []
        for rec in records:
            if rec.id not in seen:
                seen.add(rec.id)
                selection.append(rec)
        batches = partition(selection, self.batch_size)
        progress = SyncProgress(total=len(selection), batch_count=len(batches))
        messages: List[str] = []
        failed_batches: List[int] = []
        target_ids: List[str] = []
        subjects: List[str] = []
        finished = False
        stopped = False
        logger.info("Starting sync of %d questions in %d batches", len(selection), len(batches))

        try:
            for batch_index, batch in enumerate(batches):
                if self.cancelled:
                    logger.info("Sync cancelled before batch %d", batch_index)
                    stopped = True
                    break
                self.state = SyncState.COMMITTING
                now = self.clock()
                inserts: List[Tuple[str, Dict[str, Any]]] = []
                updates: List[SourceUpdate] = []
                staged: List[QuestionRecord] = []
                for rec in batch:
                    reason = should_skip(rec, verdicts.get(rec.id), include_similar, only_unsynced)
                    if reason:
                        logger.debug("Skipping %s (%s)", rec.id, reason)
                        progress.skipped += 1
                        continue
                    try:
                        insert, update = self._stage(rec, now)
                    except MappingError as e:
                        logger.warning("%s", e)
                        messages.append(str(e))
                        progress.errors += 1
                        continue
                    inserts.append(insert)
                    updates.append(update)
                    staged.append(rec)

                if inserts:
                    try:
                        self._commit(lambda: self.target.insert(inserts))
                        self._commit(lambda: self.source.mark_synced(updates))
                    except Exception as e:
                        failure = BatchCommitFailure(batch_index, e)
                        logger.warning("%s", failure)
                        messages.append(str(failure))
                        failed_batches.append(batch_index)
                        progress.errors += len(inserts)
                    else:
                        progress.success += len(inserts)
                        target_ids.extend(doc_id for doc_id, _ in inserts)
                        for rec, (doc_id, _) in zip(staged, inserts):
                            rec.is_synced = True
                            rec.synced_at = now
                            rec.synced_to_id = doc_id
                            if rec.subject and rec.subject not in subjects:
                                subjects.append(rec.subject)

                progress.processed += len(batch)
                progress.batch_index = batch_index + 1
                logger.info(
                    "Batch %d/%d: processed=%d success=%d skipped=%d errors=%d",
                    batch_index + 1, len(batches), progress.processed,
                    progress.success, progress.skipped, progress.errors,
                )
                yield replace(progress)
            finished = True
        finally:
            self._finish(progress, messages, failed_batches, target_ids, subjects, filter_criteria,
                         aborted=stopped or not finished)

    def _finish(
        self,
        progress: SyncProgress,
        messages: List[str],
        failed_batches: List[int],
        target_ids: List[str],
        subjects: List[str],
        filter_criteria: Optional[Dict[str, Any]],
        aborted: bool,
    ) -> None:
        now = self.clock()
        status = run_status(progress.success, progress.errors)
        config = self.ledger.load_config()
        config.total_synced += progress.success
        config.last_sync_date = now
        config.last_sync_subjects = list(subjects)
        self.ledger.save_config(config)
        entry = SyncHistoryEntry(
            timestamp=now,
            count=progress.success,
            filter_criteria=dict(filter_criteria or {}),
            status=status,
            errors=list(messages),
            subjects=list(subjects),
            cancelled=aborted,
        )
        self.ledger.append_history(entry)
        self.state = SyncState.ABORTED if aborted else SyncState.COMPLETED
        self.result = SyncResult(self.state, replace(progress), entry, messages, failed_batches, target_ids)
        logger.info(
            "Sync %s (%s): success=%d skipped=%d errors=%d",
            self.state.value, status, progress.success, progress.skipped, progress.errors,
        )
        if target_ids:
            notify_safely(self.notifier, target_ids)

    def run(
        self,
        records: Sequence[QuestionRecord],
        verdicts: Optional[Mapping[str, DuplicateVerdict]] = None,
        include_similar: bool = False,
        only_unsynced: bool = True,
        filter_criteria: Optional[Dict[str, Any]] = None,
        on_progress: Optional[Callable[[SyncProgress], Any]] = None,
    ) -> SyncResult:
        for snapshot in self.iter_run(records, verdicts, include_similar, only_unsynced, filter_criteria):
            if on_progress is not None:
                on_progress(snapshot)
        assert self.result is not None
        return self.result


def notify_safely(notifier: Optional[Notifier], ids: List[str]) -> None:
    """Fire-and-forget index notification; a failure never undoes committed writes."""
    if notifier is None:
        return
    try:
        notifier(list(ids))
    except Exception as e:
        logger.warning("Index notification for %d questions failed: %s", len(ids), e)
