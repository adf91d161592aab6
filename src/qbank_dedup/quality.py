"""Structural quality checks for multiple-choice questions.

Runs alongside clustering over the same questions but reports separately.
Issue types:
- missing_options: fewer options than expected, or blank options
- missing_correct_answer: no correct answer set
- invalid_correct_answer: the correct answer is not one of the options
- missing_explanation: no explanation (empty markup counts as none)
- semantic: content problem flagged by an optional reviewer
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .comparator import ContentReviewer, review_safely
from .normalize import normalize_option, strip_markup
from .records import QuestionRecord

DEFAULT_EXPECTED_OPTIONS = 4


@dataclass
class Issue:
    type: str
    comment: str


@dataclass
class QualityReport:
    question_id: str
    issues: List[Issue] = field(default_factory=list)


def _is_blank(value) -> bool:
    return not isinstance(value, str) or not value.strip()


def _preview(text: str, limit: int = 50) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def check_question(record: QuestionRecord, expected_options: int = DEFAULT_EXPECTED_OPTIONS) -> List[Issue]:
    issues: List[Issue] = []
    options = record.options or []

    if len(options) < expected_options:
        issues.append(
            Issue("missing_options", f"Question has {len(options)} options. Expected {expected_options} options for MCQ.")
        )
    blank = sum(1 for opt in options if _is_blank(opt))
    if blank:
        issues.append(Issue("missing_options", f"{blank} option(s) are empty or blank."))

    if _is_blank(record.correct_answer):
        issues.append(Issue("missing_correct_answer", "No correct answer is specified for this question."))
    elif options:
        answer = normalize_option(record.correct_answer)
        if answer not in {normalize_option(opt) for opt in options}:
            issues.append(
                Issue(
                    "invalid_correct_answer",
                    f'Correct answer "{_preview(record.correct_answer)}" is not found in the available options.',
                )
            )

    explanation = record.explanation if isinstance(record.explanation, str) else ""
    if not strip_markup(explanation).strip():
        issues.append(Issue("missing_explanation", "No explanation is provided for this question."))
    return issues


def analyze_quality(
    records: Sequence[QuestionRecord],
    expected_options: int = DEFAULT_EXPECTED_OPTIONS,
    reviewer: Optional[ContentReviewer] = None,
) -> List[QualityReport]:
    """Structural pass over every question, then an optional reviewer pass over the clean ones."""
    reports: List[QualityReport] = []
    clean: List[QuestionRecord] = []
    for rec in records:
        if rec.is_deleted:
            continue
        issues = check_question(rec, expected_options)
        if issues:
            reports.append(QualityReport(rec.id, issues))
        else:
            clean.append(rec)

    known = {rec.id for rec in clean}
    for question_id, comment in review_safely(reviewer, clean):
        if question_id in known and comment:
            reports.append(QualityReport(question_id, [Issue("semantic", comment)]))
    return reports
