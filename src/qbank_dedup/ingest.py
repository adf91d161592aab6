"""Read and write question files (JSON or CSV) and flat CSV reports.

JSON input: a list of question documents with an ``id`` key, or an object
mapping ids to documents. CSV input needs id and questionText columns;
options are separated by "|".
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .records import QuestionRecord

OPTION_SEPARATOR = "|"


def read_questions(path: str | Path) -> List[QuestionRecord]:
    path = Path(path)
    if path.suffix.lower() == ".csv":
        return read_questions_csv(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        return [QuestionRecord.from_dict(doc, key) for key, doc in data.items()]
    if isinstance(data, list):
        return [QuestionRecord.from_dict(doc) for doc in data]
    raise ValueError(f"{path}: expected a JSON list or object of questions")


def read_questions_csv(path: str | Path) -> List[QuestionRecord]:
    path = Path(path)
    rows: List[QuestionRecord] = []
    with path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        expected = {"id", "questionText"}
        missing = expected - set(reader.fieldnames or [])
        if missing:
            raise ValueError(f"Missing required columns in {path}: {sorted(missing)}")
        for r in reader:
            doc = dict(r)
            raw_options = doc.pop("options", "") or ""
            doc["options"] = [o.strip() for o in raw_options.split(OPTION_SEPARATOR)] if raw_options else []
            for flag in ("isDeleted", "isSynced"):
                if flag in doc:
                    doc[flag] = str(doc[flag]).strip().lower() in {"1", "true", "yes"}
            rows.append(QuestionRecord.from_dict(doc))
    return rows


def write_csv(path: str | Path, rows: Iterable[dict], fieldnames: Optional[Sequence[str]] = None) -> None:
    """Write ``rows`` as CSV; with no rows, only the header (or nothing if unknown)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = list(rows)
    columns = list(fieldnames) if fieldnames else (list(rows[0].keys()) if rows else [])
    with path.open("w", encoding="utf-8", newline="") as f:
        if not columns:
            return
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)
