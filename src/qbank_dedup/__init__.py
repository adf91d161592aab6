"""Question-bank duplicate detection and synchronization engine.

Two entry modes share the same normalization and similarity machinery:
- analysis: find clusters of repeated questions inside one collection
- migration: classify source questions against a target and copy the new
  ones across in resumable batches
"""

__all__ = [
    "records",
    "normalize",
    "fingerprint",
    "similarity",
    "detect_duplicates",
    "clusters",
    "quality",
    "comparator",
    "analysis",
    "store",
    "ledger",
    "mapping",
    "sync",
    "session",
    "config",
    "errors",
    "report",
]
