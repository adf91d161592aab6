"""Cluster repeated questions inside one comparison set (analysis mode).

Two questions are linked when any of these holds:
- exact: same normalized text and same set of normalized options
- lexical: similarity score >= duplicate threshold (pairs taken from length buckets)
- semantic: the optional comparator scores the pair >= duplicate threshold

Clusters are the connected components of the link relation; components with
a single member are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .comparator import GuardedComparator
from .normalize import NormalizationLog, normalize_text
from .records import QuestionRecord
from .similarity import CandidateBuckets, Scorer, default_length_ratio, get_scorer

logger = logging.getLogger(__name__)


class UnionFind:
    def __init__(self, items: Sequence[str] = ()) -> None:
        self._parent: Dict[str, str] = {}
        for item in items:
            self.add(item)

    def add(self, item: str) -> None:
        self._parent.setdefault(item, item)

    def find(self, item: str) -> str:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        # Path compression
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> bool:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return False
        self._parent[rb] = ra
        return True

    def groups(self) -> List[List[str]]:
        by_root: Dict[str, List[str]] = {}
        for item in self._parent:
            by_root.setdefault(self.find(item), []).append(item)
        return list(by_root.values())


@dataclass
class ClusterLink:
    id_a: str
    id_b: str
    reason: str  # exact | lexical | semantic
    score: float
    comment: str = ""


@dataclass
class Cluster:
    member_ids: List[str]
    links: List[ClusterLink] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.member_ids)


def exact_key(
    record: QuestionRecord,
    log: Optional[NormalizationLog] = None,
    norm_text: Optional[str] = None,
) -> str:
    """Normalized text plus the sorted, normalized options.

    Pass ``norm_text`` when the question text is already normalized.
    """
    if norm_text is None:
        norm_text = normalize_text(record.text, log, context=f"question {record.id}")
    if not norm_text:
        return ""
    opts = sorted(normalize_text(o, log, context=f"option of {record.id}") for o in record.options)
    return norm_text + "###" + "|".join(opts)


def build_clusters(
    records: Sequence[QuestionRecord],
    threshold: float,
    method: str = "jaccard",
    scorer: Optional[Scorer] = None,
    comparator: Optional[GuardedComparator] = None,
    length_ratio: Optional[float] = None,
    log: Optional[NormalizationLog] = None,
) -> List[Cluster]:
    """Group mutually similar questions; order follows first appearance in ``records``."""
    score_fn = scorer or get_scorer(method)
    if length_ratio is None:
        # The comparator may link texts that share few tokens, so it gets the wide band
        lexical_only = comparator is None and scorer is None
        length_ratio = default_length_ratio(method if lexical_only else "", threshold)
    active = [r for r in records if not r.is_deleted]
    order = {r.id: i for i, r in enumerate(active)}
    uf = UnionFind([r.id for r in active])
    links: List[ClusterLink] = []

    exact_groups: Dict[str, List[str]] = {}
    texts: List[tuple] = []
    for rec in active:
        norm_text = normalize_text(rec.text, log, context=f"question {rec.id}")
        key = exact_key(rec, log, norm_text)
        if key:
            exact_groups.setdefault(key, []).append(rec.id)
        texts.append((rec.id, norm_text))
    for ids in exact_groups.values():
        for other in ids[1:]:
            uf.union(ids[0], other)
            links.append(ClusterLink(ids[0], other, "exact", 1.0))

    buckets = CandidateBuckets.build(texts, length_ratio=length_ratio)
    compared = 0
    for id_a, text_a, id_b, text_b in buckets.pairs():
        compared += 1
        score = score_fn(text_a, text_b)
        if score >= threshold:
            if uf.union(id_a, id_b):
                links.append(ClusterLink(id_a, id_b, "lexical", score))
            continue
        if comparator is not None and comparator.available and uf.find(id_a) != uf.find(id_b):
            result = comparator.compare(text_a, text_b)
            if result is not None and result.score >= threshold:
                uf.union(id_a, id_b)
                links.append(ClusterLink(id_a, id_b, "semantic", result.score, result.comment))

    clusters: List[Cluster] = []
    for members in uf.groups():
        if len(members) < 2:
            continue
        members.sort(key=order.__getitem__)
        member_set = set(members)
        clusters.append(Cluster(members, [link for link in links if link.id_a in member_set]))
    clusters.sort(key=lambda c: order[c.member_ids[0]])
    logger.info(
        "Clustered %d questions: %d pairs compared, %d clusters", len(active), compared, len(clusters)
    )
    return clusters
