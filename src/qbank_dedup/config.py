"""Engine configuration loaded from JSON (defaults are used when the file is missing)."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .detect_duplicates import Thresholds
from .quality import DEFAULT_EXPECTED_OPTIONS
from .similarity import SCORERS, default_length_ratio
from .sync import DEFAULT_BATCH_SIZE, RetryPolicy


@dataclass
class EngineConfig:
    duplicate_threshold: float = 0.92
    similar_threshold: float = 0.75
    similarity_method: str = "jaccard"
    min_similarity_length: int = 20
    bucket_length_ratio: Optional[float] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    expected_options: int = DEFAULT_EXPECTED_OPTIONS
    source_path: str = "data/questions.json"
    target_path: str = "data/mock-questions.json"
    ledger_path: str = "data/sync-ledger.json"
    names_path: str = "data/display-names.json"

    def __post_init__(self) -> None:
        # Raises ValueError on bad ordering
        self.thresholds()
        if self.similarity_method not in SCORERS:
            raise ValueError(
                f"Unknown similarity_method {self.similarity_method!r}; expected one of {sorted(SCORERS)}"
            )
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def thresholds(self) -> Thresholds:
        return Thresholds(duplicate=self.duplicate_threshold, similar=self.similar_threshold)

    def length_ratio(self) -> float:
        if self.bucket_length_ratio is not None:
            return self.bucket_length_ratio
        return default_length_ratio(self.similarity_method, self.similar_threshold)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(self.max_attempts, self.backoff_base, self.backoff_max)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**data)


def load_config(path: str | Path | None) -> EngineConfig:
    if not path:
        return EngineConfig()
    path = Path(path)
    if not path.exists():
        return EngineConfig()
    return EngineConfig.from_dict(json.loads(path.read_text(encoding="utf-8")))
