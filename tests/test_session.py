"""Tests for the migration session commands and analysis mode."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from qbank_dedup.analysis import analyze_chapters, analyze_collection
from qbank_dedup.config import EngineConfig
from qbank_dedup.detect_duplicates import STATUS_DUPLICATE, STATUS_NEW, STATUS_SIMILAR
from qbank_dedup.errors import QueryCapabilityError
from qbank_dedup.ledger import InMemoryLedger
from qbank_dedup.records import QuestionRecord
from qbank_dedup.store import InMemoryStore, SourceFilter
from qbank_dedup.sync import RUN_SUCCESS, SyncState


def q(qid, text, answer="A", **kwargs):
    data = dict(
        id=qid,
        text=text,
        correct_answer=answer,
        options=["A", "B", "C", "D"],
        explanation="Because.",
        subject="Physics",
        chapter="Mechanics",
        status="published",
    )
    data.update(kwargs)
    return QuestionRecord(**data)


@pytest.fixture
def target():
    return InMemoryStore.from_records(
        [
            q("t1", "Newton formulated gravitation laws", "newton"),
            q("t2", "Galileo observed jupiter moons", "galileo"),
        ]
    )


@pytest.fixture
def source():
    return InMemoryStore.from_records(
        [
            q("s1", "Newton formulated gravitation laws", "newton"),
            q("s2", "Galileo observed jupiter moons carefully", "galileo"),
            q("s3", "Kepler described elliptical planetary orbits"),
            q("s4", "Hooke measured spring elasticity constants"),
        ]
    )


@pytest.fixture
def session(source, target):
    from qbank_dedup.session import SyncSession

    config = EngineConfig(batch_size=2, backoff_base=0, backoff_max=0)
    return SyncSession(source, target, InMemoryLedger(), config)


class TestSyncSession:
    """Test select / toggle / sync commands."""

    def test_analyze_selects_new(self, session):
        report = session.analyze()
        assert session.counts == {STATUS_NEW: 2, STATUS_DUPLICATE: 1, STATUS_SIMILAR: 1}
        assert report.by_id()["s2"].status == STATUS_SIMILAR
        assert session.selected_ids() == ["s3", "s4"]

    def test_toggle_include_similar(self, session):
        session.analyze()
        assert session.toggle_include_similar() is True
        assert session.selected_ids() == ["s2", "s3", "s4"]
        assert session.toggle_include_similar() is False
        assert session.selected_ids() == ["s3", "s4"]

    def test_toggle_single(self, session):
        session.analyze()
        assert session.toggle("s3") is False
        assert session.selected_ids() == ["s4"]
        assert session.toggle("s3") is True

    def test_select_all_new_resets_manual_changes(self, session):
        session.analyze()
        session.toggle("s3")
        session.select_all_new()
        assert session.selected_ids() == ["s3", "s4"]

    def test_start_sync_and_rerun(self, session, source, target):
        """Test that a second run over the same filter migrates nothing."""
        session.analyze()
        progress = []
        result = session.start_sync(on_progress=progress.append)

        assert result.status == RUN_SUCCESS
        assert result.progress.success == 2
        assert [p.processed for p in progress] == [2]
        assert len(target.docs) == 4

        report = session.analyze()
        assert [v.source_id for v in report.verdicts] == ["s1", "s2"]
        assert session.selected_ids() == []
        with pytest.raises(ValueError):
            session.start_sync()

    def test_similar_skipped_even_if_selected(self, session):
        """Test that the synchronizer re-checks verdicts for hand-picked similar questions."""
        session.analyze()
        session.toggle("s2")
        result = session.start_sync()
        assert result.progress.skipped == 1
        assert result.progress.success == 2

    def test_cancel(self, session, source):
        source.docs.update({f"x{n}": q(f"x{n}", f"Unique topic number {n} zebra").to_dict() for n in range(4)})
        session.analyze()
        result = session.start_sync(on_progress=lambda p: session.cancel())
        assert result.state == SyncState.ABORTED
        assert result.progress.processed == 2

    def test_query_capability_error_propagates(self, target):
        from qbank_dedup.session import SyncSession

        source = InMemoryStore(indexed_fields={"status"})
        session = SyncSession(source, target, InMemoryLedger())
        with pytest.raises(QueryCapabilityError):
            session.analyze(SourceFilter(subject="Physics", from_date=date(2024, 1, 1)))

    def test_target_read_failure_aborts(self, source):
        from qbank_dedup.session import SyncSession

        target = MagicMock()
        target.read_all.side_effect = ConnectionError("unreachable")
        session = SyncSession(source, target, InMemoryLedger())
        with pytest.raises(ConnectionError):
            session.analyze()
        assert session.records == []

    def test_history(self, session):
        session.analyze()
        session.start_sync()
        assert session.sync_config().total_synced == 2
        assert session.history()[0].filter_criteria["onlyUnsynced"] is True


class TestAnalysisMode:
    """Test intra-collection analysis."""

    @pytest.fixture
    def bank(self):
        return InMemoryStore.from_records(
            [
                q("a", "Which law explains inertia of resting bodies"),
                q("b", "Which law explains inertia of resting bodies?"),
                q("c", "State ohms law", chapter="Electricity", options=["A"]),
                q("d", "State ohms law", chapter="Electricity", options=["A"]),
                q("e", "Define resistance", chapter="Electricity", explanation=""),
            ]
        )

    def test_analyze_collection(self, bank):
        result = analyze_collection(bank, SourceFilter(chapter="Mechanics", status=None, only_unsynced=False))
        assert result.total == 2
        assert [c.member_ids for c in result.clusters] == [["a", "b"]]
        assert result.quality == []

    def test_analyze_chapters_with_quality(self, bank):
        result = analyze_chapters(bank, "Physics", ["Mechanics", "Electricity"], check_quality=True)

        assert result.total_processed == 5
        assert result.all_groups == [["a", "b"], ["c", "d"]]
        electricity = result.by_chapter["Electricity"]
        flagged = {r.question_id: [i.type for i in r.issues] for r in electricity.quality}
        assert flagged["c"] == ["missing_options"]
        assert flagged["e"] == ["missing_explanation"]

    def test_analyze_chapters_requires_subject(self, bank):
        with pytest.raises(ValueError):
            analyze_chapters(bank, "", ["Mechanics"])

    def test_comparator_failure_does_not_abort(self, bank):
        comparator = MagicMock()
        comparator.compare.side_effect = RuntimeError("model offline")
        result = analyze_collection(
            bank, SourceFilter(status=None, only_unsynced=False), comparator=comparator
        )
        assert result.comparator_available is False
        assert ["a", "b"] in [c.member_ids for c in result.clusters]
