"""Tests for duplicate classification."""

import pytest

from qbank_dedup.detect_duplicates import (
    STATUS_DUPLICATE,
    STATUS_NEW,
    STATUS_SIMILAR,
    STATUSES,
    ClassificationReport,
    DuplicateClassifier,
    DuplicateVerdict,
    Thresholds,
    classify_records,
)
from qbank_dedup.normalize import NormalizationLog
from qbank_dedup.records import QuestionRecord


def q(qid, text, answer="A"):
    return QuestionRecord(id=qid, text=text, correct_answer=answer, options=["A", "B", "C", "D"])


@pytest.fixture
def targets():
    """Five target questions."""
    return [
        q("t1", "Photosynthesis occurs inside chloroplast organelles", "chloroplast"),
        q("t2", "Mitochondria produce cellular energy molecules", "atp"),
        q("t3", "Ribosomes synthesize protein chains rapidly", "ribosome"),
        q("t4", "Newton formulated gravitation laws", "newton"),
        q("t5", "Darwin proposed natural selection", "darwin"),
    ]


@pytest.fixture
def sources():
    """Ten source questions: 3 exact copies, 2 near copies, 5 unrelated."""
    return [
        q("s1", "<p>Photosynthesis occurs inside   chloroplast organelles</p>", "Chloroplast"),
        q("s2", "MITOCHONDRIA produce cellular energy molecules", "ATP"),
        q("s3", "Ribosomes synthesize protein chains rapidly.", "ribosome"),
        q("s4", "Newton formulated gravitation laws precisely", "newton"),
        q("s5", "Darwin proposed natural selection theory", "darwin"),
        q("s6", "Volcanic eruptions release molten magma"),
        q("s7", "Tectonic plates drift across oceans slowly"),
        q("s8", "Glaciers carve valleys over millennia"),
        q("s9", "Hurricanes form above warm tropical waters"),
        q("s10", "Earthquakes measured using richter scale"),
    ]


class TestThresholds:
    """Test threshold validation and banding."""

    def test_defaults(self):
        t = Thresholds()
        assert t.duplicate == 0.92
        assert t.similar == 0.75

    @pytest.mark.parametrize("dup,sim", [(0.7, 0.8), (0.8, 0.8), (1.2, 0.5), (0.9, -0.1)])
    def test_invalid_ordering(self, dup, sim):
        with pytest.raises(ValueError):
            Thresholds(duplicate=dup, similar=sim)

    def test_status_for(self):
        t = Thresholds(duplicate=0.92, similar=0.75)
        assert t.status_for(0.95) == STATUS_DUPLICATE
        assert t.status_for(0.92) == STATUS_DUPLICATE
        assert t.status_for(0.80) == STATUS_SIMILAR
        assert t.status_for(0.75) == STATUS_SIMILAR
        assert t.status_for(0.74) == STATUS_NEW


class TestClassifier:
    """Test per-question verdicts."""

    def test_scenario_mixed_batch(self, sources, targets):
        """Test 3 exact, 2 near and 5 unrelated questions give 3/2/5."""
        report = classify_records(sources, targets, Thresholds(duplicate=0.92, similar=0.75))

        assert report.counts == {STATUS_NEW: 5, STATUS_DUPLICATE: 3, STATUS_SIMILAR: 2}
        assert sum(report.counts.values()) == 10

        by_id = report.by_id()
        for sid, tid in (("s1", "t1"), ("s2", "t2"), ("s3", "t3")):
            assert by_id[sid].status == STATUS_DUPLICATE
            assert by_id[sid].matched_target_id == tid
            assert by_id[sid].similarity_score == 1.0
            assert by_id[sid].match_reason == "fingerprint"
        assert by_id["s4"].status == STATUS_SIMILAR
        assert by_id["s4"].matched_target_id == "t4"
        assert by_id["s4"].similarity_score == pytest.approx(0.8)
        assert by_id["s5"].matched_target_id == "t5"

    def test_empty_target_all_new(self, sources):
        """Test that a first-ever sync (empty target) classifies everything as new."""
        report = classify_records(sources, [])
        assert report.counts[STATUS_NEW] == len(sources)
        assert all(v.matched_target_id is None for v in report.verdicts)

    def test_exact_match_ignores_thresholds(self, sources, targets):
        """Test that a fingerprint hit is a duplicate with score 1 under any thresholds."""
        strict = Thresholds(duplicate=1.0, similar=0.99)
        report = classify_records(sources[:3], targets, strict)
        assert [v.status for v in report.verdicts] == [STATUS_DUPLICATE] * 3
        assert all(v.similarity_score == 1.0 for v in report.verdicts)

    def test_exact_match_skips_scorer(self, targets):
        """Test that the scorer is never called for fingerprint hits."""
        calls = []

        def scorer(a, b):
            calls.append((a, b))
            return 0.0

        classifier = DuplicateClassifier(scorer=scorer).prepare(targets)
        verdict = classifier.classify_one(targets[0])
        assert verdict.status == STATUS_DUPLICATE
        assert calls == []

    def test_fuzzy_duplicate(self, targets):
        """Test that a score at or above the duplicate threshold is a duplicate."""
        source = q("s", "Newton formulated gravitation laws precisely", "different answer")
        report = classify_records([source], targets, Thresholds(duplicate=0.8, similar=0.5))
        assert report.verdicts[0].status == STATUS_DUPLICATE
        assert report.verdicts[0].match_reason == "similarity"

    def test_short_text_skips_fuzzy(self, targets):
        """Test that short questions are only matched exactly."""
        classifier = DuplicateClassifier(min_similarity_length=100).prepare(targets)
        verdict = classifier.classify_one(q("s", "Newton formulated gravitation laws precisely"))
        assert verdict.status == STATUS_NEW
        assert verdict.match_reason == "short-text"

    def test_deleted_targets_ignored(self, targets):
        targets[0].is_deleted = True
        report = classify_records([targets[0]], targets)
        assert report.verdicts[0].status == STATUS_NEW

    def test_totality(self, sources, targets):
        """Test that every source gets exactly one verdict with a known status."""
        report = classify_records(sources + [q("bad", None), q("odd", 123)], targets)
        assert [v.source_id for v in report.verdicts] == [s.id for s in sources] + ["bad", "odd"]
        assert all(v.status in STATUSES for v in report.verdicts)

    def test_malformed_text_logged(self, targets):
        """Test that non-string text is counted, not raised."""
        log = NormalizationLog()
        classifier = DuplicateClassifier(log=log).prepare(targets)
        verdict = classifier.classify_one(q("odd", 123))
        assert verdict.status == STATUS_NEW
        assert log.count == 1

    def test_zero_similar_threshold_without_candidates(self):
        """Test that a question with no scored candidate stays new even when similar=0."""
        source = q("s", "Newton formulated gravitation laws precisely")
        report = classify_records([source], [], Thresholds(duplicate=0.5, similar=0.0))
        assert report.verdicts[0].status == STATUS_NEW
        assert report.verdicts[0].matched_target_id is None

    def test_encoded_markup_not_fingerprint_duplicate(self):
        """Test that questions differing only after an escaped "<" are not exact copies."""
        target = q("t1", "<p>If x &lt; 5 and y is 3, what is x plus y squared?</p>", "64")
        source = q("s1", "<p>If x &lt; 9 and y is 7, which statement is true?</p>", "64")
        verdict = classify_records([source], [target]).verdicts[0]
        assert verdict.match_reason != "fingerprint"
        assert verdict.status == STATUS_NEW

    def test_classify_before_prepare(self):
        with pytest.raises(RuntimeError):
            DuplicateClassifier().classify_one(q("s", "text"))

    def test_token_sort_method(self, targets):
        """Test the rapidfuzz scorer finds reordered questions."""
        source = q("s", "Cellular energy molecules mitochondria produce", "other")
        report = classify_records([source], targets, method="token_sort")
        assert report.verdicts[0].status in (STATUS_SIMILAR, STATUS_DUPLICATE)
        assert report.verdicts[0].matched_target_id == "t2"


class TestDefaultSelection:
    """Test the default selection policy."""

    @pytest.fixture
    def report(self):
        return ClassificationReport(
            [
                DuplicateVerdict("a", STATUS_NEW),
                DuplicateVerdict("b", STATUS_DUPLICATE, "t1", 1.0),
                DuplicateVerdict("c", STATUS_SIMILAR, "t2", 0.8),
                DuplicateVerdict("d", STATUS_NEW),
            ]
        )

    def test_new_only(self, report):
        assert report.default_selection() == ["a", "d"]

    def test_include_similar(self, report):
        assert report.default_selection(include_similar=True) == ["a", "c", "d"]

    def test_counts(self, report):
        assert report.counts == {STATUS_NEW: 2, STATUS_DUPLICATE: 1, STATUS_SIMILAR: 1}
