from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from .remote import CONNECT_FAILED, RemoteResultService
from .tiers import teacher_tier
from .types import TeacherRow, TeacherView, User

log = logging.getLogger(__name__)

EMPTY_MESSAGE = "No student results yet"
TEACHERS_ONLY_VIEW = "Only teachers can view student results."


def _student_name(profile: Dict[str, Any]) -> str:
    name = profile.get("full_name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    email = profile.get("email")
    if isinstance(email, str) and email:
        return email.split("@")[0]
    return "Student"


def to_row(raw: Dict[str, Any]) -> TeacherRow:
    profile = raw.get("profiles") or {}
    if not isinstance(profile, dict):
        profile = {}
    score = int(raw.get("score") or 0)
    return TeacherRow(
        result_id=str(raw.get("id", "")),
        student_email=str(profile.get("email") or "Unknown"),
        student_name=_student_name(profile),
        level=str(raw.get("level") or ""),
        description=str(raw.get("description") or ""),
        score=score,
        date=str(raw.get("created_at") or raw.get("date") or ""),
        tier=teacher_tier(score),
    )


class TeacherAggregator:
    """Teacher-only view over the remote mirror.

    Rows come exclusively from the group-scoped remote query. A failed fetch
    yields an error view with no rows; the local cache is never consulted.
    """

    def __init__(self, remote: RemoteResultService, user: Optional[User]) -> None:
        self.remote = remote
        self.user = user

    async def render_for_teacher(self) -> TeacherView:
        if self.user is None or not self.user.is_teacher:
            return TeacherView(state="error", error=TEACHERS_ONLY_VIEW)
        try:
            resp = await self.remote.fetch_results_for_teacher()
        except Exception as e:
            log.warning("teacher fetch raised: %s", e)
            return TeacherView(state="error", error=CONNECT_FAILED)
        if not resp.ok:
            return TeacherView(state="error", error=resp.error)

        rows: List[TeacherRow] = []
        for raw in resp.data or []:
            if not isinstance(raw, dict):
                continue
            try:
                rows.append(to_row(raw))
            except (TypeError, ValueError):
                log.warning("skipping malformed teacher row %r", raw.get("id"))
        if not rows:
            return TeacherView(state="empty")
        rows.sort(key=lambda r: r.date, reverse=True)
        return TeacherView(state="ready", rows=rows)


def format_view(view: TeacherView) -> str:
    if view.state == "error":
        return f"Error: {view.error}"
    if view.state == "empty":
        return EMPTY_MESSAGE
    if view.state == "loading":
        return "Loading student results..."
    lines = ["Student Level Results"]
    for r in view.rows:
        lines.append(f"{r.student_name:<20} {r.level:<10} {r.score:>2}/10  {r.tier:<10} {r.date}")
    return "\n".join(lines)
