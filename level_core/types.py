from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

Variant = Literal["general", "ielts", "toefl"]
Role = Literal["student", "teacher"]
SessionStatus = Literal["not_started", "in_progress", "completed"]


@dataclass(frozen=True)
class Question:
    id: int
    section: str
    prompt: str
    options: tuple[str, ...]
    correct: int

    def public(self) -> Dict[str, Any]:
        """Question payload without the answer key."""
        return {
            "id": self.id,
            "section": self.section,
            "prompt": self.prompt,
            "options": list(self.options),
        }


@dataclass(frozen=True)
class Answer:
    question: int
    answer: int
    correct: bool
    section: str
    variant: str = "general"

    def to_record(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "correct": self.correct,
            "section": self.section,
        }

    @classmethod
    def from_record(cls, raw: Dict[str, Any], variant: str = "general") -> "Answer":
        return cls(
            question=int(raw["question"]),
            answer=int(raw["answer"]),
            correct=bool(raw["correct"]),
            section=str(raw.get("section") or raw.get("level") or ""),
            variant=str(raw.get("variant") or raw.get("testType") or variant),
        )


@dataclass(frozen=True)
class ResultDescriptor:
    level: str
    description: str
    numeric_score: Optional[float] = None


@dataclass
class User:
    email: str
    role: Role = "student"
    full_name: Optional[str] = None

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"

    @classmethod
    def from_payload(cls, raw: Optional[Dict[str, Any]]) -> Optional["User"]:
        if not raw:
            return None
        email = str(raw.get("email") or "").strip()
        if not email:
            return None
        role = str(raw.get("role") or "student").strip().lower()
        return cls(
            email=email,
            role="teacher" if role == "teacher" else "student",
            full_name=(raw.get("full_name") or None),
        )


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Result:
    id: int
    level: str
    description: str
    score: int
    variant: str
    date: str
    answers: List[Answer] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level,
            "description": self.description,
            "score": self.score,
            "variant": self.variant,
            "date": self.date,
            "answers": [a.to_record() for a in self.answers],
        }

    @classmethod
    def from_record(cls, raw: Dict[str, Any]) -> "Result":
        variant = str(raw.get("variant") or raw.get("testType") or "general")
        return cls(
            id=int(raw["id"]),
            level=str(raw["level"]),
            description=str(raw.get("description") or ""),
            score=int(raw["score"]),
            variant=variant,
            date=str(raw.get("date") or raw.get("created_at") or ""),
            answers=[Answer.from_record(a, variant) for a in (raw.get("answers") or [])],
        )


@dataclass(frozen=True)
class TeacherRow:
    result_id: str
    student_email: str
    student_name: str
    level: str
    description: str
    score: int
    date: str
    tier: str

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class TeacherView:
    state: Literal["loading", "error", "empty", "ready"]
    rows: List[TeacherRow] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "error": self.error,
            "rows": [r.to_dict() for r in self.rows],
        }
