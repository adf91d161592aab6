"""Reporting utilities for verdicts, clusters, quality issues and sync runs."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Iterable, List, Optional

from .clusters import Cluster
from .detect_duplicates import STATUSES, DuplicateVerdict
from .ingest import write_csv
from .ledger import SyncConfig, SyncHistoryEntry
from .quality import QualityReport
from .sync import SyncProgress, SyncResult

VERDICT_COLUMNS = ["source_id", "status", "matched_target_id", "similarity_score", "match_reason"]
CLUSTER_COLUMNS = ["cluster", "question_id", "size", "link_reasons"]
QUALITY_COLUMNS = ["question_id", "issue", "comment"]


def verdicts_to_rows(verdicts: Iterable[DuplicateVerdict]) -> List[dict]:
    return [asdict(v) for v in verdicts]


def clusters_to_rows(clusters: Iterable[Cluster]) -> List[dict]:
    rows = []
    for n, cluster in enumerate(clusters, start=1):
        reasons = sorted({link.reason for link in cluster.links})
        for member in cluster.member_ids:
            rows.append(
                {
                    "cluster": n,
                    "question_id": member,
                    "size": len(cluster),
                    "link_reasons": " ".join(reasons),
                }
            )
    return rows


def quality_to_rows(reports: Iterable[QualityReport]) -> List[dict]:
    return [
        {"question_id": r.question_id, "issue": issue.type, "comment": issue.comment}
        for r in reports
        for issue in r.issues
    ]


def write_verdicts_csv(path: str, verdicts: Iterable[DuplicateVerdict]) -> None:
    write_csv(path, verdicts_to_rows(verdicts), VERDICT_COLUMNS)


def write_clusters_csv(path: str, clusters: Iterable[Cluster]) -> None:
    write_csv(path, clusters_to_rows(clusters), CLUSTER_COLUMNS)


def write_quality_csv(path: str, reports: Iterable[QualityReport]) -> None:
    write_csv(path, quality_to_rows(reports), QUALITY_COLUMNS)


def print_summary(verdicts: Iterable[DuplicateVerdict], warnings: int = 0) -> None:
    """Print verdict counts (new / duplicate / similar)."""
    counts = {status: 0 for status in STATUSES}
    for v in verdicts:
        counts[v.status] = counts.get(v.status, 0) + 1
    total = sum(counts.values())
    print("Duplicate Detection Summary:")
    for status in STATUSES:
        print(f"  {status:>9}: {counts.get(status, 0)}")
    print(f"  {'total':>9}: {total}")
    if warnings:
        print(f"  Data-quality warnings: {warnings}")


def print_cluster_summary(clusters: List[Cluster], total: int) -> None:
    in_clusters = sum(len(c) for c in clusters)
    print("Repeated Question Summary:")
    print(f"  Questions analyzed:     {total}")
    print(f"  Duplicate groups:       {len(clusters)}")
    print(f"  Questions in groups:    {in_clusters}")
    for n, cluster in enumerate(clusters, start=1):
        print(f"    #{n}: {', '.join(cluster.member_ids)}")


def print_quality_summary(reports: List[QualityReport]) -> None:
    by_type: dict = {}
    for r in reports:
        for issue in r.issues:
            by_type[issue.type] = by_type.get(issue.type, 0) + 1
    print("Quality Check Summary:")
    print(f"  Questions with issues: {len(reports)}")
    for issue_type in sorted(by_type):
        print(f"    {issue_type:<24} {by_type[issue_type]}")


def format_progress(p: SyncProgress) -> str:
    return (
        f"[{p.percent:>3}%] {p.processed}/{p.total} "
        f"success={p.success} skipped={p.skipped} errors={p.errors}"
    )


def format_sync_date(value: Optional[datetime]) -> str:
    if not value:
        return "Never"
    return value.strftime("%b %d, %Y %H:%M")


def print_sync_result(result: SyncResult) -> None:
    p = result.progress
    print(f"Sync {result.state.value} ({result.status}):")
    print(f"  Synced:  {p.success}")
    print(f"  Skipped: {p.skipped}")
    print(f"  Errors:  {p.errors}")
    for message in result.error_messages:
        print(f"    - {message}")


def print_history(config: SyncConfig, entries: List[SyncHistoryEntry]) -> None:
    print(f"Last sync:    {format_sync_date(config.last_sync_date)}")
    print(f"Total synced: {config.total_synced}")
    if not entries:
        print("No sync history.")
        return
    print("History (newest first):")
    for e in entries:
        flag = " cancelled" if e.cancelled else ""
        subjects = ", ".join(e.subjects) or "-"
        print(f"  {format_sync_date(e.timestamp)}  {e.status:<8} {e.count:>5} questions  [{subjects}]{flag}")
