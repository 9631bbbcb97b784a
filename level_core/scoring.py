from __future__ import annotations
from typing import Callable, Dict, List, Tuple

from .config import QUESTIONS_PER_TEST
from .question_bank import resolve_variant
from .types import ResultDescriptor

# (inclusive upper bound in percent, level, description); last row is the catch-all
GENERAL_BANDS: List[Tuple[float, str, str]] = [
    (20, "A1", "Beginner"),
    (40, "A2", "Elementary"),
    (60, "B1", "Intermediate"),
    (80, "B2", "Upper Intermediate"),
    (100, "C1", "Advanced"),
]

IELTS_BANDS: List[Tuple[float, float, str]] = [
    (20, 4.0, "Limited User"),
    (30, 4.5, "Limited User"),
    (40, 5.0, "Modest User"),
    (50, 5.5, "Modest User"),
    (60, 6.0, "Competent User"),
    (70, 6.5, "Competent User"),
    (80, 7.0, "Good User"),
    (90, 7.5, "Good User"),
    (100, 8.0, "Very Good User"),
]

TOEFL_BANDS: List[Tuple[float, str]] = [
    (20, "Basic (A1-A2)"),
    (40, "Low Intermediate (A2-B1)"),
    (60, "High Intermediate (B1-B2)"),
    (80, "Advanced (B2-C1)"),
    (100, "Expert (C1-C2)"),
]

TOEFL_MAX = 120


def _clamp_count(correct_count: int) -> int:
    c = int(correct_count)
    if c < 0: return 0
    if c > QUESTIONS_PER_TEST: return QUESTIONS_PER_TEST
    return c


def percentage(correct_count: int) -> float:
    # integer arithmetic first so 3/10 lands on exactly 30.0
    return _clamp_count(correct_count) * 100 / QUESTIONS_PER_TEST


def _band_index(pct: float, bounds: List[float]) -> int:
    for i, upper in enumerate(bounds[:-1]):
        if pct <= upper:
            return i
    return len(bounds) - 1


def _score_general(pct: float) -> ResultDescriptor:
    i = _band_index(pct, [b[0] for b in GENERAL_BANDS])
    _, level, desc = GENERAL_BANDS[i]
    return ResultDescriptor(level=level, description=desc)


def _score_ielts(pct: float) -> ResultDescriptor:
    i = _band_index(pct, [b[0] for b in IELTS_BANDS])
    _, band, desc = IELTS_BANDS[i]
    label = "Band 8.0+" if i == len(IELTS_BANDS) - 1 else f"Band {band:.1f}"
    return ResultDescriptor(level=label, description=desc, numeric_score=band)


def _score_toefl(pct: float) -> ResultDescriptor:
    points = int(round(pct / 100 * TOEFL_MAX))
    i = _band_index(pct, [b[0] for b in TOEFL_BANDS])
    return ResultDescriptor(
        level=f"{points}/{TOEFL_MAX}",
        description=TOEFL_BANDS[i][1],
        numeric_score=float(points),
    )


_SCORERS: Dict[str, Callable[[float], ResultDescriptor]] = {
    "general": _score_general,
    "ielts": _score_ielts,
    "toefl": _score_toefl,
}


def score_result(correct_count: int, variant: str) -> ResultDescriptor:
    """
    Map a 0..10 correct count to the variant's level descriptor.
    Total over every count; unknown variants score as general.
    """
    return _SCORERS[resolve_variant(variant)](percentage(correct_count))


def band_rank(correct_count: int, variant: str) -> int:
    """Ordinal position of the band a count falls into (0 = lowest)."""
    pct = percentage(correct_count)
    v = resolve_variant(variant)
    if v == "ielts":
        return _band_index(pct, [b[0] for b in IELTS_BANDS])
    if v == "toefl":
        return _band_index(pct, [b[0] for b in TOEFL_BANDS])
    return _band_index(pct, [b[0] for b in GENERAL_BANDS])
