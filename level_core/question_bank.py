from __future__ import annotations
import json, logging, importlib.resources as ir
from functools import lru_cache
from typing import Dict, List

from .config import QUESTIONS_PER_TEST, DEFAULT_VARIANT
from .types import Question

log = logging.getLogger(__name__)

VARIANTS: tuple[str, ...] = ("general", "ielts", "toefl")
TEST_TITLES: Dict[str, str] = {
    "general": "General Level",
    "ielts": "IELTS Practice",
    "toefl": "TOEFL Practice",
}
OPTION_LETTERS = "ABCD"


@lru_cache(maxsize=1)
def load_bank() -> Dict[str, tuple[Question, ...]]:
    data = ir.files(__package__).joinpath("data/questions.json").read_text(encoding="utf-8")
    raw = json.loads(data)
    bank: Dict[str, tuple[Question, ...]] = {}
    for variant, rows in raw.items():
        bank[variant] = tuple(
            Question(
                id=idx,
                section=str(r["section"]),
                prompt=str(r["prompt"]),
                options=tuple(str(o) for o in r["options"]),
                correct=int(r["correct"]),
            )
            for idx, r in enumerate(rows)
        )
    return bank


def resolve_variant(variant: str | None) -> str:
    """Unknown or missing variants fall back to the general test."""
    v = (variant or "").strip().lower()
    if v in VARIANTS:
        return v
    if v:
        log.debug("unknown variant %r, using %s", variant, DEFAULT_VARIANT)
    return DEFAULT_VARIANT


def get_questions(variant: str | None) -> tuple[Question, ...]:
    return load_bank()[resolve_variant(variant)]


def progress_text(index: int) -> str:
    return f"Question {index + 1} of {QUESTIONS_PER_TEST}"


def option_letter(idx: int) -> str:
    return OPTION_LETTERS[idx] if 0 <= idx < len(OPTION_LETTERS) else str(idx)


def validate_bank(bank: Dict[str, tuple[Question, ...]] | None = None) -> List[str]:
    """Return human-readable problems; an empty list means the bank is usable."""
    bank = load_bank() if bank is None else bank
    problems: List[str] = []
    for variant in VARIANTS:
        questions = bank.get(variant)
        if questions is None:
            problems.append(f"{variant}: missing")
            continue
        if len(questions) != QUESTIONS_PER_TEST:
            problems.append(f"{variant}: has {len(questions)} questions (expected {QUESTIONS_PER_TEST})")
        for q in questions:
            if len(q.options) != 4:
                problems.append(f"{variant} #{q.id}: has {len(q.options)} options (expected 4)")
            if not 0 <= q.correct < len(q.options):
                problems.append(f"{variant} #{q.id}: correct index {q.correct} out of range")
            if not q.section:
                problems.append(f"{variant} #{q.id}: missing section label")
    return problems
