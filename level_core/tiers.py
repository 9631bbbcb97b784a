# level_core/tiers.py
from .config import TEACHER_EXCELLENT_MIN, TEACHER_AVERAGE_MIN


def teacher_tier(score: int) -> str:
    s = int(score)
    if s >= TEACHER_EXCELLENT_MIN: return "Excellent"
    if s >= TEACHER_AVERAGE_MIN: return "Average"
    return "Needs Work"
