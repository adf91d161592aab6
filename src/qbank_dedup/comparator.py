"""Optional semantic collaborators (e.g. an LLM-backed service).

Neither collaborator is required. Both are wrapped so that any failure turns
them off for the rest of the run and the engine carries on with lexical
matching and structural checks only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union

from .errors import ComparatorUnavailable
from .records import QuestionRecord

logger = logging.getLogger(__name__)


@dataclass
class ComparatorResult:
    score: float
    comment: str = ""


class SemanticComparator(Protocol):
    def compare(self, text_a: str, text_b: str) -> ComparatorResult: ...


class ContentReviewer(Protocol):
    def review(self, records: Sequence[QuestionRecord]) -> List[Tuple[str, str]]:
        """Return (question_id, comment) for questions with content problems."""
        ...


CompareFn = Callable[[str, str], ComparatorResult]


class GuardedComparator:
    """Wrap a comparator so failures degrade to "no opinion" instead of raising.

    After the first failure the wrapped comparator is not called again.
    """

    def __init__(self, inner: Union[SemanticComparator, CompareFn, None]) -> None:
        if inner is not None and hasattr(inner, "compare"):
            self._fn: Optional[CompareFn] = inner.compare
        else:
            self._fn = inner
        self.available = inner is not None
        self.failure: Optional[ComparatorUnavailable] = None

    def compare(self, text_a: str, text_b: str) -> Optional[ComparatorResult]:
        if not self.available or self._fn is None:
            return None
        try:
            result = self._fn(text_a, text_b)
            score = float(result.score)
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"score {score} outside [0, 1]")
        except Exception as e:
            self.available = False
            self.failure = ComparatorUnavailable(str(e))
            logger.warning("Semantic comparator unavailable, continuing lexical-only: %s", e)
            return None
        return ComparatorResult(score, getattr(result, "comment", "") or "")


def review_safely(reviewer: Optional[ContentReviewer], records: Sequence[QuestionRecord]) -> List[Tuple[str, str]]:
    if reviewer is None or not records:
        return []
    try:
        return list(reviewer.review(records))
    except Exception as e:
        logger.warning("Content reviewer failed, skipping semantic quality checks: %s", e)
        return []
