# level_core/engine.py
from __future__ import annotations
import logging, threading, time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .config import QUESTIONS_PER_TEST
from .errors import QUIZ_NOT_IN_PROGRESS, TEACHER_CANNOT_TEST, RoleError, SessionStateError
from .notify import Notifier, QueuedNotifier
from .question_bank import get_questions, resolve_variant
from .scoring import score_result
from .types import Answer, Question, Result, SessionStatus, User

log = logging.getLogger(__name__)

_ID_LOCK = threading.Lock()
_LAST_ID = 0


def _next_result_id() -> int:
    """Millisecond creation timestamp, bumped when two results land in the same ms."""
    global _LAST_ID
    with _ID_LOCK:
        now = int(time.time() * 1000)
        _LAST_ID = max(now, _LAST_ID + 1)
        return _LAST_ID


class QuizSession:
    """One run of a fixed ten-question test.

    not_started -> in_progress -> completed. There is no abandoned state:
    a session dropped mid-test simply leaves no trace. ``on_complete`` is
    called once with the finished Result when the tenth answer lands.
    """

    def __init__(
        self,
        user: Optional[User] = None,
        notifier: Optional[Notifier] = None,
        on_complete: Optional[Callable[[Result], None]] = None,
    ) -> None:
        self.user = user
        self.notifier: Notifier = notifier or QueuedNotifier()
        self.on_complete = on_complete
        self.variant: str = "general"
        self.status: SessionStatus = "not_started"
        self.current_question: int = 0
        self.answers: List[Answer] = []
        self.questions: tuple[Question, ...] = ()
        self.result: Optional[Result] = None
        # guards every state transition; the HTTP layer answers from a threadpool
        self._lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self.status == "in_progress"

    def start(self, variant: str | None = None, *, strict: bool = False) -> bool:
        if self.user is not None and self.user.is_teacher:
            self.notifier.alert(TEACHER_CANNOT_TEST)
            if strict:
                raise RoleError(TEACHER_CANNOT_TEST)
            return False
        with self._lock:
            if self.in_progress:
                log.debug("discarding in-progress %s session at question %d", self.variant, self.current_question)
            self.variant = resolve_variant(variant)
            self.questions = get_questions(self.variant)
            self.current_question = 0
            self.answers = []
            self.result = None
            self.status = "in_progress"
        log.debug("started %s session", self.variant)
        return True

    def current(self) -> Optional[Question]:
        if not self.in_progress:
            return None
        return self.questions[self.current_question]

    def submit_answer(self, selected_index: int, *, strict: bool = False) -> Optional[Answer]:
        finished: Optional[Result] = None
        with self._lock:
            if not self.in_progress:
                return self._reject(QUIZ_NOT_IN_PROGRESS, strict)
            q = self.questions[self.current_question]
            try:
                idx = int(selected_index)
            except (TypeError, ValueError):
                return self._reject(f"Choose one of the options A-{chr(64 + len(q.options))}.", strict)
            if not 0 <= idx < len(q.options):
                return self._reject(f"Choose one of the options A-{chr(64 + len(q.options))}.", strict)

            ans = Answer(
                question=self.current_question,
                answer=idx,
                correct=idx == q.correct,
                section=q.section,
                variant=self.variant,
            )
            self.answers.append(ans)
            self.current_question += 1
            if self.current_question >= QUESTIONS_PER_TEST:
                finished = self._complete()
        # hook runs outside the lock
        if finished is not None and self.on_complete is not None:
            self.on_complete(finished)
        return ans

    def correct_count(self) -> int:
        return sum(1 for a in self.answers if a.correct)

    def _reject(self, message: str, strict: bool) -> None:
        self.notifier.alert(message)
        if strict:
            raise SessionStateError(message)
        return None

    def _complete(self) -> Result:
        self.status = "completed"
        score = self.correct_count()
        desc = score_result(score, self.variant)
        self.result = Result(
            id=_next_result_id(),
            level=desc.level,
            description=desc.description,
            score=score,
            variant=self.variant,
            date=datetime.now(timezone.utc).isoformat(),
            answers=list(self.answers),
        )
        log.info("completed %s test: %s (%d/%d)", self.variant, desc.level, score, QUESTIONS_PER_TEST)
        return self.result

    def snapshot(self) -> dict:
        with self._lock:
            q = self.current()
            return {
                "variant": self.variant,
                "status": self.status,
                "current_question": self.current_question,
                "answered": len(self.answers),
                "question": q.public() if q else None,
                "result": self.result.to_record() if self.result else None,
            }
