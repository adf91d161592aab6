"""Tests for structural quality checks."""

from unittest.mock import MagicMock

from qbank_dedup.quality import analyze_quality, check_question
from qbank_dedup.records import QuestionRecord


def good(qid="q1", **kwargs):
    data = dict(
        id=qid,
        text="Which gas do plants absorb?",
        options=["Oxygen", "Carbon dioxide", "Nitrogen", "Helium"],
        correct_answer="Carbon dioxide",
        explanation="Plants take in CO2 for photosynthesis.",
    )
    data.update(kwargs)
    return QuestionRecord(**data)


def types(issues):
    return [i.type for i in issues]


class TestCheckQuestion:
    """Test individual structural checks."""

    def test_clean_question(self):
        assert check_question(good()) == []

    def test_too_few_options(self):
        issues = check_question(good(options=["Carbon dioxide", "Oxygen"]))
        assert types(issues) == ["missing_options"]
        assert "2 options" in issues[0].comment

    def test_blank_options(self):
        issues = check_question(good(options=["Carbon dioxide", "", "  ", "Helium"]))
        assert types(issues) == ["missing_options"]
        assert "2 option(s)" in issues[0].comment

    def test_missing_correct_answer(self):
        assert types(check_question(good(correct_answer=""))) == ["missing_correct_answer"]

    def test_answer_not_in_options(self):
        issues = check_question(good(correct_answer="Argon"))
        assert types(issues) == ["invalid_correct_answer"]

    def test_answer_match_ignores_markup_and_case(self):
        assert check_question(good(correct_answer="<b>carbon DIOXIDE</b>")) == []

    def test_missing_explanation(self):
        for explanation in (None, "", "   ", "<p></p>"):
            assert types(check_question(good(explanation=explanation))) == ["missing_explanation"]

    def test_expected_options_configurable(self):
        record = good(options=["Carbon dioxide", "Oxygen"])
        assert check_question(record, expected_options=2) == []

    def test_multiple_issues(self):
        record = good(options=[], correct_answer="", explanation="")
        assert types(check_question(record)) == [
            "missing_options",
            "missing_correct_answer",
            "missing_explanation",
        ]


class TestAnalyzeQuality:
    """Test the full pass with an optional reviewer."""

    def test_reports_only_questions_with_issues(self):
        reports = analyze_quality([good("ok"), good("bad", correct_answer="")])
        assert [r.question_id for r in reports] == ["bad"]

    def test_deleted_skipped(self):
        assert analyze_quality([good("bad", correct_answer="", is_deleted=True)]) == []

    def test_reviewer_sees_only_clean_questions(self):
        reviewer = MagicMock()
        reviewer.review.return_value = [("ok", "Options too similar"), ("unknown", "ignored")]

        reports = analyze_quality([good("ok"), good("bad", correct_answer="")], reviewer=reviewer)

        reviewed = reviewer.review.call_args[0][0]
        assert [r.id for r in reviewed] == ["ok"]
        semantic = [r for r in reports if r.issues[0].type == "semantic"]
        assert [(r.question_id, r.issues[0].comment) for r in semantic] == [("ok", "Options too similar")]

    def test_reviewer_failure_ignored(self):
        reviewer = MagicMock()
        reviewer.review.side_effect = TimeoutError("slow")
        reports = analyze_quality([good("ok")], reviewer=reviewer)
        assert reports == []
