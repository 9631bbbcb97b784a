from __future__ import annotations
from fastapi import FastAPI, HTTPException, Body, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uuid, os, logging, threading, typing as t
from pathlib import Path

from level_core.actions import LevelTestController
from level_core.config import load_config
from level_core.errors import TEACHER_CANNOT_TEST, ActionArgumentError, UnknownActionError
from level_core.notify import QueuedNotifier
from level_core.question_bank import TEST_TITLES, VARIANTS, get_questions, resolve_variant
from level_core.remote import RemoteResultService, service_from_config
from level_core.storage import JsonFileStore, storage_key
from level_core.types import User

log = logging.getLogger(__name__)

CFG = load_config()
DATA_ROOT = Path(os.getenv("DATA_DIR", CFG.get("DATA_DIR", "data"))).resolve()
LOCAL_STORE = JsonFileStore(DATA_ROOT / "local")

# sid -> controller; one controller (and so one live session) per user key
SESS: dict[str, LevelTestController] = {}
CONTROLLERS: dict[str, LevelTestController] = {}
# storage key -> (user_id, bearer token) the controller's remote was built with
CREDENTIALS: dict[str, tuple[str | None, str | None]] = {}
_CTL_LOCK = threading.Lock()


def _default_remote(user: User | None, user_id: str | None, token: str | None) -> RemoteResultService:
    return service_from_config(CFG, user, user_id=user_id, access_token=token)


REMOTE_FACTORY: t.Callable[[User | None, str | None, str | None], RemoteResultService] = _default_remote

app = FastAPI(title="Level Test API")

@app.get("/")
def root():
    return {"status": "ok", "service": "level-test-api"}

ALLOWED_ORIGINS = [o for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class StartReq(BaseModel):
    variant: str = "general"   # "general" | "ielts" | "toefl"
    email: str | None = None
    role: str | None = None
    full_name: str | None = None

class AnswerReq(BaseModel):
    selected_index: int

class IntegrateReq(BaseModel):
    level: str | None = None
    description: str | None = None

class ActionReq(BaseModel):
    args: dict[str, t.Any] = {}

# ---- Helpers ----
def _user(email: str | None, role: str | None, full_name: str | None = None) -> User | None:
    return User.from_payload({"email": email, "role": role, "full_name": full_name})


def _token(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def _controller(user: User | None, user_id: str | None = None, authorization: str | None = None) -> LevelTestController:
    key = storage_key(user)
    token = _token(authorization)
    with _CTL_LOCK:
        ctl = CONTROLLERS.get(key)
        if ctl is None or (ctl.user is not None and user is not None and ctl.user.role != user.role):
            ctl = LevelTestController(
                user,
                LOCAL_STORE,
                REMOTE_FACTORY(user, user_id, token),
                notifier=QueuedNotifier(),
            )
            CONTROLLERS[key] = ctl
            CREDENTIALS[key] = (user_id, token)
        elif (user_id or token) and CREDENTIALS.get(key) != (user_id, token):
            # newer credentials replace the ones the controller was built with
            ctl.use_remote(REMOTE_FACTORY(ctl.user, user_id, token))
            CREDENTIALS[key] = (user_id, token)
    return ctl


def _session_controller(sid: str) -> LevelTestController:
    ctl = SESS.get(sid)
    if not ctl: raise HTTPException(404, "session not found")
    return ctl

# ---- Health / bank ----
@app.get("/health")
def health():
    return {
        "remote_backend": "supabase" if CFG.get("SUPABASE_URL") and CFG.get("SUPABASE_ANON_KEY") else "none",
        "remote_mirror": bool(CFG.get("REMOTE_MIRROR_ENABLED", True)),
        "data_dir": str(DATA_ROOT),
    }

@app.get("/variants")
def variants():
    return {"variants": [{"id": v, "title": TEST_TITLES[v]} for v in VARIANTS]}

@app.get("/questions/{variant}")
def questions(variant: str):
    v = resolve_variant(variant)
    return {"variant": v, "questions": [q.public() for q in get_questions(v)]}

# ---- Session ----
@app.post("/session/start")
def start(
    req: StartReq,
    x_user_email: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_user_id: str | None = Header(None),
    authorization: str | None = Header(None),
):
    user = _user(req.email or x_user_email, req.role or x_user_role, req.full_name)
    ctl = _controller(user, x_user_id, authorization)
    out = ctl.dispatch("start_test", variant=req.variant)
    if not out["ok"]:
        raise HTTPException(403, (out.get("notices") or [TEACHER_CANNOT_TEST])[0])
    sid = str(uuid.uuid4())
    with _CTL_LOCK:
        for old in [s for s, c in SESS.items() if c is ctl]:
            SESS.pop(old, None)
        SESS[sid] = ctl
    return {"session_id": sid, **out}

@app.post("/session/{sid}/answer")
def answer(sid: str, req: AnswerReq):
    # sync endpoint: the remote mirror runs on its own thread and outlives the request
    ctl = _session_controller(sid)
    out = ctl.dispatch("select_answer", index=req.selected_index)
    if not out["ok"]:
        msg = (out.get("notices") or ["answer rejected"])[0]
        raise HTTPException(409 if not ctl.session.in_progress else 422, msg)
    return out

@app.get("/session/{sid}")
def session_state(sid: str):
    ctl = _session_controller(sid)
    return {"session_id": sid, **ctl.session.snapshot()}

@app.post("/session/{sid}/retake")
def retake(sid: str):
    ctl = _session_controller(sid)
    out = ctl.dispatch("retake")
    if not out["ok"]:
        raise HTTPException(403, (out.get("notices") or [TEACHER_CANNOT_TEST])[0])
    return {"session_id": sid, **out}

# ---- Results ----
@app.get("/results")
def list_results(x_user_email: str | None = Header(None), x_user_role: str | None = Header(None)):
    ctl = _controller(_user(x_user_email, x_user_role))
    return {"results": ctl.dispatch("previous_results")}

@app.delete("/results/{result_id}")
def delete_result(
    result_id: int,
    confirm: bool = Query(False, description="Destructive action guard"),
    x_user_email: str | None = Header(None),
    x_user_role: str | None = Header(None),
):
    ctl = _controller(_user(x_user_email, x_user_role))
    out = ctl.dispatch("delete_result", result_id=result_id, confirm=confirm)
    if not out["deleted"]:
        if not confirm:
            raise HTTPException(409, "confirmation required")
        raise HTTPException(404, "result not found")
    return {"ok": True, "results": out["results"]}

@app.post("/results/integrate")
async def integrate(
    req: IntegrateReq = Body(...),
    x_user_email: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_user_id: str | None = Header(None),
    authorization: str | None = Header(None),
):
    ctl = _controller(_user(x_user_email, x_user_role), x_user_id, authorization)
    out = await ctl.dispatch("integrate_level", level=req.level, description=req.description)
    if out["state"] != "integrated":
        raise HTTPException(502, (out.get("notices") or ["Level integration failed. Please try again."])[0])
    return out

@app.get("/results/remote")
async def remote_results(
    x_user_email: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_user_id: str | None = Header(None),
    authorization: str | None = Header(None),
):
    ctl = _controller(_user(x_user_email, x_user_role), x_user_id, authorization)
    resp = await ctl.dispatch("remote_history")
    if not resp.ok:
        raise HTTPException(502, resp.error)
    return {"results": resp.data or []}

# ---- Teacher ----
@app.get("/teacher/results")
async def teacher_results(
    x_user_email: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_user_id: str | None = Header(None),
    authorization: str | None = Header(None),
):
    user = _user(x_user_email, x_user_role)
    if user is None or not user.is_teacher:
        raise HTTPException(403, "Only teachers can view student results.")
    ctl = _controller(user, x_user_id, authorization)
    view = await ctl.dispatch("teacher_view")
    return view.to_dict()

# ---- Generic dispatch ----
@app.post("/actions/{name}")
async def run_action(
    name: str,
    req: ActionReq | None = None,
    x_user_email: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_user_id: str | None = Header(None),
    authorization: str | None = Header(None),
):
    ctl = _controller(_user(x_user_email, x_user_role), x_user_id, authorization)
    try:
        out = ctl.dispatch(name, **(req.args if req else {}))
    except UnknownActionError as e:
        raise HTTPException(404, str(e))
    except ActionArgumentError as e:
        raise HTTPException(422, str(e))
    if hasattr(out, "__await__"):
        out = await out
    if hasattr(out, "to_dict"):
        out = out.to_dict()
    return {"action": name, "result": out}
