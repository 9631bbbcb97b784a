"""Command table the presentation layer drives.

Every user-facing interaction goes through ``LevelTestController.dispatch``
by name. Handlers for remote reads and level integration are coroutines and
are returned un-awaited; everything else runs synchronously.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from .analytics import section_breakdown, weakest_sections
from .engine import QuizSession
from .errors import ActionArgumentError, UnknownActionError
from .notify import Notifier, QueuedNotifier
from .question_bank import TEST_TITLES, progress_text
from .remote import RemoteResponse, RemoteResultService
from .scoring import band_rank
from .storage import KeyValueStore, ResultStore, level_guidance
from .teacher import TeacherAggregator
from .types import Result, TeacherView, User

log = logging.getLogger(__name__)

IntegrateState = Literal["idle", "pending", "integrated"]


class LevelTestController:
    def __init__(
        self,
        user: Optional[User],
        kv: KeyValueStore,
        remote: RemoteResultService,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.user = user
        self.remote = remote
        self.notifier: Notifier = notifier or QueuedNotifier()
        self.store = ResultStore(kv, remote, user, notifier=self.notifier)
        self.teacher = TeacherAggregator(remote, user)
        self.session = QuizSession(user, self.notifier, on_complete=self._on_complete)
        self.integrate_state: IntegrateState = "idle"
        self.last_mirror: Union[asyncio.Task, threading.Thread, None] = None
        self._actions: Dict[str, Callable[..., Any]] = {
            "init": self.init,
            "start_test": self.start_test,
            "select_answer": self.select_answer,
            "retake": self.retake,
            "go_to_start": self.go_to_start,
            "previous_results": self.previous_results,
            "delete_result": self.delete_result,
            "integrate_level": self.integrate_level,
            "teacher_view": self.teacher_view,
            "remote_history": self.remote_history,
        }

    @property
    def actions(self) -> List[str]:
        return sorted(self._actions)

    def dispatch(self, action: str, **kwargs: Any) -> Any:
        handler = self._actions.get(action)
        if handler is None:
            raise UnknownActionError(f"unknown action: {action}")
        try:
            inspect.signature(handler).bind(**kwargs)
        except TypeError as e:
            raise ActionArgumentError(f"{action}: {e}") from e
        log.debug("dispatch %s %s", action, kwargs)
        return handler(**kwargs)

    def use_remote(self, remote: RemoteResultService) -> None:
        """Rebind the remote service, e.g. when the caller presents fresh credentials."""
        self.remote = remote
        self.store.remote = remote
        self.teacher.remote = remote

    # ---- handlers ----
    def init(self) -> Dict[str, Any]:
        """Initial screen: teachers get the aggregated view, students their history."""
        if self.user is not None and self.user.is_teacher:
            return {"view": "teacher", "state": "loading"}
        return {"view": "start", "results": self.previous_results()}

    def start_test(self, variant: str = "general") -> Dict[str, Any]:
        if not self.session.start(variant):
            return {"ok": False, "notices": self._notices()}
        self.integrate_state = "idle"
        return {"ok": True, "title": TEST_TITLES[self.session.variant], **self._question_payload()}

    def select_answer(self, index: int) -> Dict[str, Any]:
        ans = self.session.submit_answer(index)
        if ans is None:
            return {"ok": False, "notices": self._notices()}
        out: Dict[str, Any] = {"ok": True, "answer": ans.to_record(), "done": not self.session.in_progress}
        if self.session.in_progress:
            out.update(self._question_payload())
        else:
            out["result"] = self.result_payload()
        return out

    def retake(self) -> Dict[str, Any]:
        return self.start_test(self.session.variant)

    def go_to_start(self) -> Dict[str, Any]:
        # abandons any in-progress run without persisting it
        self.session = QuizSession(self.user, self.notifier, on_complete=self._on_complete)
        return {"view": "start", "results": self.previous_results()}

    def previous_results(self) -> List[Dict[str, Any]]:
        return [r.to_record() for r in self.store.list()]

    def delete_result(self, result_id: int, confirm: Optional[bool] = None) -> Dict[str, Any]:
        deleted = self.store.delete(int(result_id), confirmed=confirm)
        return {"deleted": deleted, "results": self.previous_results()}

    async def integrate_level(self, level: Optional[str] = None, description: Optional[str] = None) -> Dict[str, Any]:
        if self.integrate_state != "idle":
            return {"state": self.integrate_state, "notices": self._notices()}
        result = self.session.result
        level = level or (result.level if result else None)
        description = description or (result.description if result else None)
        if not level:
            self.notifier.alert("Finish a test before integrating a level.")
            return {"state": self.integrate_state, "notices": self._notices()}
        self.integrate_state = "pending"
        ok = await self.store.integrate_level(level, description or "")
        self.integrate_state = "integrated" if ok else "idle"
        out: Dict[str, Any] = {"state": self.integrate_state, "notices": self._notices()}
        if ok:
            out["guidance"] = level_guidance(level, description or "")
        return out

    async def teacher_view(self) -> TeacherView:
        return await self.teacher.render_for_teacher()

    async def remote_history(self) -> RemoteResponse:
        return await self.store.fetch_remote_history()

    # ---- helpers ----
    def result_payload(self) -> Optional[Dict[str, Any]]:
        result = self.session.result
        if result is None:
            return None
        return {
            **result.to_record(),
            "title": TEST_TITLES.get(result.variant, result.variant),
            "sections": section_breakdown(result.answers),
            "weakest_sections": weakest_sections(result.answers),
            "band_rank": band_rank(result.score, result.variant),
        }

    def _question_payload(self) -> Dict[str, Any]:
        q = self.session.current()
        return {
            "question": q.public() if q else None,
            "progress": progress_text(self.session.current_question),
        }

    def _notices(self) -> List[str]:
        drain = getattr(self.notifier, "drain", None)
        return drain() if callable(drain) else []

    def _on_complete(self, result: Result) -> None:
        self.last_mirror = self.store.save(result)
