from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


QUESTIONS_PER_TEST: int = 10
HISTORY_CAP: int = 10

STORAGE_KEY_PREFIX: str = "aitutor_level_results_"
ANONYMOUS_IDENTITY: str = "anonymous"
DEFAULT_VARIANT: str = "general"

TEACHER_EXCELLENT_MIN: int = 8
TEACHER_AVERAGE_MIN: int = 5

REMOTE_MIRROR_ENABLED: bool = True
REMOTE_TIMEOUT_SEC: float = 10.0
RESULTS_TABLE: str = "level_test_results"
LEVEL_TABLE: str = "users"

DATA_DIR: str = "data"

# // env overrides for staging/ops
HISTORY_CAP = _env_int("HISTORY_CAP", HISTORY_CAP)
REMOTE_MIRROR_ENABLED = _env_bool("REMOTE_MIRROR_ENABLED", REMOTE_MIRROR_ENABLED)
REMOTE_TIMEOUT_SEC = _env_float("REMOTE_TIMEOUT_SEC", REMOTE_TIMEOUT_SEC)
DATA_DIR = os.getenv("DATA_DIR", DATA_DIR)


def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except Exception: cfg = {}
    e = os.environ
    for k in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_ACCESS_TOKEN"):
        if e.get(k): cfg[k] = e.get(k)
    cfg.setdefault("REMOTE_TIMEOUT_SEC", REMOTE_TIMEOUT_SEC)
    cfg.setdefault("REMOTE_MIRROR_ENABLED", REMOTE_MIRROR_ENABLED)
    cfg.setdefault("DATA_DIR", DATA_DIR)
    return cfg
