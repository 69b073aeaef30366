# backend/buildstate/domain/pci.py
from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Optional

SEVERITY_SCORES: dict[str, int] = {
    "LOW": 90,
    "MEDIUM": 70,
    "HIGH": 50,
    "CRITICAL": 20,
}
UNKNOWN_SEVERITY_SCORE = 50
PERFECT_SCORE = 100


def _severity(issue: Any) -> Optional[str]:
    if isinstance(issue, Mapping):
        raw = issue.get("severity")
    else:
        raw = getattr(issue, "severity", None)
    if raw is None:
        return None
    return str(raw).strip().upper()


def compute_pci(issues: Optional[Iterable[Any]]) -> int:
    """
    Property Condition Index, 0-100.

    Each issue scores by severity; the index is the mean rounded half up.
    An inspection with no issues scores 100.
    """
    scores = [SEVERITY_SCORES.get(_severity(i) or "", UNKNOWN_SEVERITY_SCORE) for i in (issues or [])]
    if not scores:
        return PERFECT_SCORE
    # half rounds up: 62.5 -> 63
    return int(math.floor(sum(scores) / len(scores) + 0.5))


def pci_band(score: int) -> str:
    if score >= 85:
        return "GOOD"
    if score >= 60:
        return "FAIR"
    return "POOR"
