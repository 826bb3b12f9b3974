# result_labels.py — final-result classification only (NO state mutation)
from __future__ import annotations

from typing import Optional

__all__ = [
    "ALL",
    "normalize_result",
    "is_known_result",
    "is_terminal_result",
]

ALL = "all"

# Ledger challenges use the first three; summary records may also be abandoned
KNOWN_RESULTS = {
    "in_progress",
    "completed",
    "failed",
    "abandoned",
}

TERMINAL_RESULTS = {
    "completed",
    "failed",
    "abandoned",
}

# Legacy labels (older Spanish-language exports, free-text entries)
RESULT_ALIASES = {
    "completo": "completed",
    "complete": "completed",
    "success": "completed",
    "fallido": "failed",
    "fail": "failed",
    "abandonado": "abandoned",
    "en curso": "in_progress",
    "en_curso": "in_progress",
    "in progress": "in_progress",
    "in-progress": "in_progress",
    "todos": ALL,
    "": ALL,
}


def normalize_result(result: Optional[str]) -> str:
    """Normalize a result label to its canonical form."""
    r = str(result or "").strip().lower()
    return RESULT_ALIASES.get(r, r)


def is_known_result(result: Optional[str]) -> bool:
    return normalize_result(result) in KNOWN_RESULTS


def is_terminal_result(result: Optional[str]) -> bool:
    """Check if the label closes a challenge."""
    return normalize_result(result) in TERMINAL_RESULTS
