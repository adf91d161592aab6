"""Text canonicalization for duplicate matching.

Policy:
- Apply NFC early for consistency.
- Strip markup tags, then unescape HTML entities.
- Lowercase, turn punctuation into spaces, collapse whitespace and trim.

The result only holds word characters separated by single spaces, so
normalizing twice yields the same string.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
import unicodedata as ud
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .errors import NormalizationWarning

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>?")
_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


@dataclass
class NormalizationLog:
    """Data-quality counter for inputs that could not be normalized.

    Passed explicitly by callers that want to report warnings for a run.
    """
    warnings: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.warnings)

    def record(self, message: str) -> None:
        self.warnings.append(message)


def _coerce(text: Any, log: Optional[NormalizationLog], context: str) -> str:
    if text is None:
        return ""
    if isinstance(text, str):
        return text
    message = f"non-string text ({type(text).__name__}) treated as empty"
    if context:
        message = f"{context}: {message}"
    logger.warning("%s", NormalizationWarning(message))
    if log is not None:
        log.record(message)
    return ""


def strip_markup(text: str) -> str:
    """Remove HTML tags, then unescape entities, keeping the visible text.

    Tags are stripped before unescaping so an encoded "&lt;" stays text.
    """
    if not text:
        return ""
    return html_lib.unescape(_TAG_RE.sub(" ", text))


def normalize_text(text: Any, log: Optional[NormalizationLog] = None, context: str = "") -> str:
    """Normalize raw question text for matching.

    Steps: NFC -> strip tags -> unescape entities -> lowercase ->
    punctuation to spaces -> collapse whitespace and trim.

    Never raises: non-string input becomes "" and is recorded on ``log``.
    """
    t = _coerce(text, log, context)
    if not t:
        return ""
    t = ud.normalize("NFC", t)
    t = strip_markup(t)
    t = t.lower()
    t = _PUNCT_RE.sub(" ", t)
    t = _WS_RE.sub(" ", t).strip()
    return t


def normalize_option(text: Any) -> str:
    """Looser canonical form for options and answers: markup stripped, case folded.

    Keeps punctuation so that answers like "x > 2" and "x < 2" stay distinct.
    """
    if not isinstance(text, str):
        return ""
    t = html_lib.unescape(_TAG_RE.sub("", text))
    return _WS_RE.sub(" ", t).strip().lower()


def tokens(normalized: str) -> List[str]:
    return normalized.split(" ") if normalized else []
