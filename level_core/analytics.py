"""Per-section breakdown of answer sequences.

Section labels are display and analytics metadata only; the scorer counts
every question as one point regardless of its section.
"""
from __future__ import annotations

from typing import Dict, Iterable, List

from .types import Answer


def section_breakdown(answers: Iterable[Answer]) -> Dict[str, Dict[str, float]]:
    out: Dict[str, Dict[str, float]] = {}
    for ans in answers:
        row = out.setdefault(ans.section or "Other", {"asked": 0, "correct": 0, "accuracy": 0.0})
        row["asked"] += 1
        if ans.correct:
            row["correct"] += 1
    for row in out.values():
        row["accuracy"] = round(row["correct"] / row["asked"], 3) if row["asked"] else 0.0
    return out


def weakest_sections(answers: Iterable[Answer], limit: int = 2) -> List[str]:
    """Sections ordered by ascending accuracy, ties broken by label."""
    rows = section_breakdown(answers)
    ranked = sorted(rows.items(), key=lambda kv: (kv[1]["accuracy"], kv[0]))
    return [name for name, row in ranked if row["accuracy"] < 1.0][:limit]


__all__ = ["section_breakdown", "weakest_sections"]
