"""CLI entrypoint for the question-bank duplicate detector.

Usage:
  qbank-dedup analyze --input mock-questions.json --subject Biology --chapter Cells --out out/groups.csv
  qbank-dedup check --source questions.json --target mock-questions.json --out out/verdicts.csv
  qbank-dedup sync --source questions.json --target mock-questions.json --ledger sync-ledger.json
  qbank-dedup history --ledger sync-ledger.json
"""

from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import List

from .analysis import analyze_chapters, analyze_collection
from .config import EngineConfig, load_config
from .errors import QueryCapabilityError
from .ingest import read_questions
from .ledger import JsonLedger
from .mapping import DisplayNames, QuestionMapper
from .report import (
    format_progress,
    print_cluster_summary,
    print_history,
    print_quality_summary,
    print_summary,
    print_sync_result,
    write_clusters_csv,
    write_quality_csv,
    write_verdicts_csv,
)
from .session import SyncSession
from .store import InMemoryStore, JsonFileStore, SourceFilter
from .sync import RUN_SUCCESS

logger = logging.getLogger(__name__)


def _source_filter(args: argparse.Namespace) -> SourceFilter:
    return SourceFilter(
        subject=args.subject,
        difficulty=args.difficulty,
        status=None if args.status == "all" else args.status,
        from_date=args.from_date,
        to_date=args.to_date,
        only_unsynced=not args.all,
    )


def _session(args: argparse.Namespace, cfg: EngineConfig) -> SyncSession:
    source_path = Path(args.source or cfg.source_path)
    if not source_path.exists():
        raise FileNotFoundError(f"Source questions not found: {source_path}")
    source = JsonFileStore(source_path)
    target = JsonFileStore(args.target or cfg.target_path)
    ledger = JsonLedger(getattr(args, "ledger", None) or cfg.ledger_path)
    names = DisplayNames.load(getattr(args, "names", None) or cfg.names_path)
    return SyncSession(source, target, ledger, cfg, mapper=QuestionMapper(names))


def cmd_analyze(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    store = InMemoryStore.from_records(read_questions(args.input))
    print(f"Loaded {len(store.docs)} questions from: {args.input}")

    if args.chapter:
        chapters = analyze_chapters(store, args.subject, args.chapter, cfg, check_quality=args.quality)
        results = list(chapters.by_chapter.items())
    else:
        criteria = SourceFilter(subject=args.subject, status=None, only_unsynced=False)
        results = [("(all)", analyze_collection(store, criteria, cfg, check_quality=args.quality))]

    clusters, quality = [], []
    for chapter, result in results:
        print(f"Chapter: {chapter}")
        print_cluster_summary(result.clusters, result.total)
        if args.quality:
            print_quality_summary(result.quality)
        clusters.extend(result.clusters)
        quality.extend(result.quality)
        print()

    write_clusters_csv(args.out, clusters)
    print(f"Wrote report: {args.out}")
    if args.quality and args.quality_out:
        write_quality_csv(args.quality_out, quality)
        print(f"Wrote quality report: {args.quality_out}")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    session = _session(args, cfg)
    report = session.analyze(_source_filter(args))
    write_verdicts_csv(args.out, report.verdicts)
    print_summary(report.verdicts, warnings=session.log.count)
    print(f"Wrote report: {args.out}")
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    session = _session(args, cfg)
    report = session.analyze(_source_filter(args))
    print_summary(report.verdicts, warnings=session.log.count)
    session.toggle_include_similar(args.include_similar)
    if not session.selected:
        print("No questions selected for sync")
        return 0
    print(f"Selected {len(session.selected)} questions for sync")
    result = session.start_sync(on_progress=lambda p: print(format_progress(p)))
    print_sync_result(result)
    return 0 if result.status == RUN_SUCCESS else 2


def cmd_history(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    ledger = JsonLedger(args.ledger or cfg.ledger_path)
    print_history(ledger.load_config(), ledger.history(args.limit))
    return 0


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--source", help="Source questions JSON (default: config source_path)")
    p.add_argument("--target", help="Target questions JSON (default: config target_path)")
    p.add_argument("--subject", help="Only questions of this subject")
    p.add_argument("--difficulty", help="Only questions of this difficulty")
    p.add_argument("--status", default="published", help="Question status to include, or 'all' (default: published)")
    p.add_argument("--from", dest="from_date", type=date.fromisoformat, help="Created on or after (YYYY-MM-DD)")
    p.add_argument("--to", dest="to_date", type=date.fromisoformat, help="Created on or before (YYYY-MM-DD)")
    p.add_argument("--all", action="store_true", help="Include questions that were already synced")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="qbank-dedup", description="Question bank duplicate detection and sync")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--config",
        default="resources/config.json",
        help="Path to config.json (optional; defaults will be used if missing)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    analyze = sub.add_parser("analyze", help="Find repeated questions within one collection")
    analyze.add_argument("--input", required=True, help="Questions file (JSON or CSV)")
    analyze.add_argument("--subject", help="Subject to analyze (required with --chapter)")
    analyze.add_argument("--chapter", action="append", help="Chapter to analyze; repeat for several")
    analyze.add_argument("--quality", action="store_true", help="Also run structural quality checks")
    analyze.add_argument("--out", required=True, help="Path to output CSV of duplicate groups")
    analyze.add_argument("--quality-out", help="Path to output CSV of quality issues")
    analyze.set_defaults(func=cmd_analyze)

    check = sub.add_parser("check", help="Classify source questions against the target")
    _add_filter_args(check)
    check.add_argument("--out", required=True, help="Path to output CSV of verdicts")
    check.set_defaults(func=cmd_check)

    sync = sub.add_parser("sync", help="Copy new questions from source to target")
    _add_filter_args(sync)
    sync.add_argument("--ledger", help="Sync config/history JSON (default: config ledger_path)")
    sync.add_argument("--names", help="Display names JSON with 'courses' and 'users' maps")
    sync.add_argument("--include-similar", action="store_true", help="Also sync questions classified as similar")
    sync.set_defaults(func=cmd_sync)

    history = sub.add_parser("history", help="Show last sync and recent history")
    history.add_argument("--ledger", help="Sync config/history JSON (default: config ledger_path)")
    history.add_argument("--limit", type=int, default=10, help="Number of entries to show")
    history.set_defaults(func=cmd_history)

    return p


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except QueryCapabilityError as e:
        print(f"Error: {e}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
