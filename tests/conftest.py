from __future__ import annotations

import threading

import pytest

from level_core.question_bank import get_questions
from level_core.remote import RemoteResponse
from level_core.storage import MemoryStore
from level_core.types import Answer, Result, User


class FakeRemote:
    """Records calls; each operation can be told to fail with an advisory error."""

    def __init__(
        self,
        *,
        fail_save: str | None = None,
        fail_fetch: str | None = None,
        fail_level: str | None = None,
        teacher_rows: list[dict] | None = None,
        raise_on_save: bool = False,
    ) -> None:
        self.fail_save = fail_save
        self.fail_fetch = fail_fetch
        self.fail_level = fail_level
        self.teacher_rows = teacher_rows or []
        self.raise_on_save = raise_on_save
        self.saved: list[dict] = []
        self.levels: list[tuple[str, str]] = []
        self.saved_event = threading.Event()

    async def save_result(self, level, description, score, answers, variant) -> RemoteResponse:
        self.saved.append(
            {"level": level, "description": description, "score": score, "answers": list(answers), "variant": variant}
        )
        self.saved_event.set()
        if self.raise_on_save:
            raise RuntimeError("backend exploded")
        if self.fail_save:
            return RemoteResponse(error=self.fail_save)
        return RemoteResponse(data={"id": len(self.saved)})

    async def fetch_results_for_teacher(self) -> RemoteResponse:
        if self.fail_fetch:
            return RemoteResponse(data=[], error=self.fail_fetch)
        return RemoteResponse(data=list(self.teacher_rows))

    async def fetch_own_results(self) -> RemoteResponse:
        if self.fail_fetch:
            return RemoteResponse(data=[], error=self.fail_fetch)
        return RemoteResponse(data=list(self.saved))

    async def save_current_level(self, level, description) -> RemoteResponse:
        self.levels.append((level, description))
        if self.fail_level:
            return RemoteResponse(error=self.fail_level)
        return RemoteResponse(data=None)


def answer_key(variant: str, correct: int) -> list[int]:
    """Selections that get exactly ``correct`` of the ten questions right (the first ones)."""

    picks: list[int] = []
    for idx, q in enumerate(get_questions(variant)):
        picks.append(q.correct if idx < correct else (q.correct + 1) % len(q.options))
    return picks


def build_result(result_id: int, *, score: int = 5, variant: str = "general") -> Result:
    answers = [
        Answer(question=i, answer=0, correct=i < score, section="A1", variant=variant)
        for i in range(10)
    ]
    return Result(
        id=result_id,
        level="B1",
        description="Intermediate",
        score=score,
        variant=variant,
        date=f"2024-01-01T00:00:{result_id % 60:02d}+00:00",
        answers=answers,
    )


@pytest.fixture
def student() -> User:
    return User(email="Ana.Lopez@Example.com", role="student")


@pytest.fixture
def teacher() -> User:
    return User(email="teacher@example.com", role="teacher")


@pytest.fixture
def kv() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()
