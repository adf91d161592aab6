"""Fuzzy similarity between normalized question texts.

Scorers take two normalized strings and return a score in [0, 1] that is
symmetric and equals 1 for identical non-empty input. Two are available:

- ``jaccard``: overlap of whitespace token sets (|A & B| / |A | B|)
- ``token_sort``: rapidfuzz token_sort_ratio, scaled to [0, 1]

``CandidateBuckets`` groups texts by distinct-token count so that only texts of
comparable length are ever compared pairwise.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from rapidfuzz import fuzz

from .normalize import tokens

Scorer = Callable[[str, str], float]

# Length band used when the scorer gives no length bound of its own
DEFAULT_LENGTH_RATIO = 0.5


def jaccard_similarity(a: str, b: str) -> float:
    set_a = set(tokens(a))
    set_b = set(tokens(b))
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def token_sort_similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return fuzz.token_sort_ratio(a, b) / 100.0


SCORERS: Dict[str, Scorer] = {
    "jaccard": jaccard_similarity,
    "token_sort": token_sort_similarity,
}


def get_scorer(method: str) -> Scorer:
    try:
        return SCORERS[method]
    except KeyError:
        raise ValueError(
            f"Unknown similarity method {method!r}; expected one of {sorted(SCORERS)}"
        ) from None


def default_length_ratio(method: str, similar_threshold: float) -> float:
    """Token-count band that cannot drop a pair scoring >= similar_threshold.

    For Jaccard, |A & B| / |A | B| <= min(|A|, |B|) / max(|A|, |B|), so the
    threshold itself is a lossless bound.
    """
    if method == "jaccard":
        return similar_threshold
    return DEFAULT_LENGTH_RATIO


@dataclass
class _Entry:
    record_id: str
    text: str
    size: int
    position: int


@dataclass
class CandidateBuckets:
    """Texts bucketed by distinct-token count.

    A text with n distinct tokens is only compared with texts whose token count lies in
    [n * ratio, n / ratio]. ``ratio <= 0`` disables pruning.
    """
    length_ratio: float = DEFAULT_LENGTH_RATIO
    _buckets: Dict[int, List[_Entry]] = field(default_factory=dict, init=False)
    _sizes: List[int] = field(default_factory=list, init=False)
    _count: int = field(default=0, init=False)

    def add(self, record_id: str, normalized: str) -> None:
        if not normalized:
            return
        size = len(set(tokens(normalized)))
        entry = _Entry(record_id, normalized, size, self._count)
        self._count += 1
        if size not in self._buckets:
            bisect.insort(self._sizes, size)
            self._buckets[size] = []
        self._buckets[size].append(entry)

    def __len__(self) -> int:
        return self._count

    def _band(self, size: int) -> Tuple[int, int]:
        if self.length_ratio <= 0:
            return 0, math.inf  # type: ignore[return-value]
        low = math.ceil(size * self.length_ratio - 1e-9)
        high = math.floor(size / self.length_ratio + 1e-9)
        return low, high

    def _entries_in_band(self, size: int) -> Iterator[_Entry]:
        low, high = self._band(size)
        start = bisect.bisect_left(self._sizes, low)
        for bucket_size in self._sizes[start:]:
            if bucket_size > high:
                break
            yield from self._buckets[bucket_size]

    def candidates(self, normalized: str, exclude_id: Optional[str] = None) -> Iterator[Tuple[str, str]]:
        """Yield (record_id, text) for every bucketed text comparable with ``normalized``."""
        if not normalized:
            return
        for entry in self._entries_in_band(len(set(tokens(normalized)))):
            if entry.record_id != exclude_id:
                yield entry.record_id, entry.text

    def pairs(self) -> Iterator[Tuple[str, str, str, str]]:
        """Yield each comparable pair once as (id_a, text_a, id_b, text_b)."""
        for size in self._sizes:
            for entry in self._buckets[size]:
                for other in self._entries_in_band(size):
                    if other.position > entry.position:
                        yield entry.record_id, entry.text, other.record_id, other.text

    @classmethod
    def build(cls, items: List[Tuple[str, str]], length_ratio: float = DEFAULT_LENGTH_RATIO) -> "CandidateBuckets":
        buckets = cls(length_ratio=length_ratio)
        for record_id, normalized in items:
            buckets.add(record_id, normalized)
        return buckets


def best_match(
    normalized: str,
    buckets: CandidateBuckets,
    scorer: Scorer,
    exclude_id: Optional[str] = None,
) -> Tuple[Optional[str], float]:
    """Highest-scoring candidate for ``normalized``; ties keep the first candidate visited."""
    best_id: Optional[str] = None
    best_score = 0.0
    for candidate_id, candidate_text in buckets.candidates(normalized, exclude_id):
        score = scorer(normalized, candidate_text)
        if score > best_score:
            best_id, best_score = candidate_id, score
    return best_id, best_score
