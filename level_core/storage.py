"""Local result history plus the best-effort remote mirror.

The local cache is a key-value store holding one JSON list per normalized
user key, newest first, capped at ``HISTORY_CAP``. Every mutation reads and
rewrites the whole list under a lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Optional, Protocol, Union

from .config import ANONYMOUS_IDENTITY, HISTORY_CAP, REMOTE_MIRROR_ENABLED, STORAGE_KEY_PREFIX
from .notify import Notifier, QueuedNotifier
from .remote import RemoteResponse, RemoteResultService
from .types import Result, User

log = logging.getLogger(__name__)

DELETE_PROMPT = "Delete this result?"
INTEGRATE_FAILED = "Level integration failed. Please try again."
INTEGRATE_OK = "Your level has been integrated! The tutor will now tailor every conversation to your level."


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """One file per key under ``root``; writes go through a temp file and rename."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def storage_key(user: Optional[User]) -> str:
    """Per-user cache key. Every anonymous caller shares one key."""
    email = (user.email if user else "") or ANONYMOUS_IDENTITY
    return STORAGE_KEY_PREFIX + re.sub(r"[^a-z0-9]", "_", email.lower())


_LOCK = threading.Lock()


class ResultStore:
    def __init__(
        self,
        kv: KeyValueStore,
        remote: RemoteResultService,
        user: Optional[User] = None,
        *,
        notifier: Optional[Notifier] = None,
        cap: int = HISTORY_CAP,
        mirror: bool = REMOTE_MIRROR_ENABLED,
    ) -> None:
        self.kv = kv
        self.remote = remote
        self.user = user
        self.notifier: Notifier = notifier or QueuedNotifier()
        self.cap = cap
        self.mirror = mirror
        self._pending: set[asyncio.Task] = set()

    @property
    def key(self) -> str:
        return storage_key(self.user)

    def _read(self) -> List[Dict[str, Any]]:
        raw = self.kv.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("discarding unreadable history under %s", self.key)
            return []
        if not isinstance(data, list):
            log.warning("discarding non-list history under %s", self.key)
            return []
        return [r for r in data if isinstance(r, dict)]

    def _write(self, records: List[Dict[str, Any]]) -> None:
        self.kv.set(self.key, json.dumps(records))

    def list(self) -> List[Result]:
        out: List[Result] = []
        for rec in self._read():
            try:
                out.append(Result.from_record(rec))
            except (KeyError, TypeError, ValueError):
                log.warning("skipping malformed result record under %s", self.key)
        return out

    def save(self, result: Result) -> Union[asyncio.Task, threading.Thread, None]:
        """Write locally, then start the remote mirror without waiting for it.

        Returns the mirror handle (task or thread) or None when mirroring is off.
        """
        with _LOCK:
            records = self._read()
            records.insert(0, result.to_record())
            del records[self.cap:]
            self._write(records)
        log.debug("saved result %s under %s", result.id, self.key)
        if not self.mirror:
            return None
        return self._spawn(self._mirror(result, self.remote))

    def delete(self, result_id: int, confirmed: Optional[bool] = None) -> bool:
        """Remove one local result. Without an explicit ``confirmed`` the notifier is asked."""
        if confirmed is None:
            confirmed = self.notifier.confirm(DELETE_PROMPT)
        if not confirmed:
            return False
        with _LOCK:
            records = self._read()
            kept = [r for r in records if r.get("id") != result_id]
            if len(kept) == len(records):
                return False
            self._write(kept)
        return True

    async def integrate_level(self, level: str, description: str) -> bool:
        try:
            resp = await self.remote.save_current_level(level, description)
        except Exception as e:
            log.error("level integration raised: %s", e)
            resp = RemoteResponse(error=str(e))
        if not resp.ok:
            log.error("failed to integrate level %s: %s", level, resp.error)
            self.notifier.alert(INTEGRATE_FAILED)
            return False
        log.info("integrated level %s (%s)", level, description)
        self.notifier.alert(INTEGRATE_OK)
        return True

    async def fetch_remote_history(self) -> RemoteResponse:
        return await self.remote.fetch_own_results()

    async def _mirror(self, result: Result, remote: RemoteResultService) -> None:
        try:
            resp = await remote.save_result(
                result.level, result.description, result.score, result.answers, result.variant
            )
        except Exception as e:
            log.warning("remote save of result %s raised: %s", result.id, e)
            return
        if resp.ok:
            log.info("mirrored result %s remotely", result.id)
        else:
            log.warning("remote save of result %s failed: %s", result.id, resp.error)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> Union[asyncio.Task, threading.Thread]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            task = loop.create_task(coro)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return task
        t = threading.Thread(target=asyncio.run, args=(coro,), daemon=True)
        t.start()
        return t


def level_guidance(level: str, description: str) -> str:
    """System-prompt paragraph for a student whose level has been integrated."""
    return (
        f"\n\nIMPORTANT: The user's English proficiency level is {level} ({description}). "
        "Please adjust your responses accordingly:\n"
        f"- Use vocabulary and grammar appropriate for {level} level\n"
        "- Provide explanations that match their comprehension level\n"
        "- Offer constructive feedback suited to their current abilities\n"
        "- Challenge them appropriately without overwhelming them"
    )
