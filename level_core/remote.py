"""Remote mirror of level test results.

The hosted backend is a PostgREST endpoint (Supabase). Group scoping of the
teacher query is enforced server-side by row-level policies: this client
never filters rows itself and never falls back to local data.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .config import LEVEL_TABLE, REMOTE_TIMEOUT_SEC, RESULTS_TABLE
from .types import Answer, User

log = logging.getLogger(__name__)

NOT_CONFIGURED = "Remote results service is not configured (demo mode)"
NOT_AUTHENTICATED = "Not authenticated"
TEACHERS_ONLY = "Only teachers can view all results"
CONNECT_FAILED = "Could not connect to database"


@dataclass
class RemoteResponse:
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RemoteResultService(Protocol):
    async def save_result(
        self, level: str, description: str, score: int, answers: List[Answer], variant: str
    ) -> RemoteResponse: ...

    async def fetch_results_for_teacher(self) -> RemoteResponse: ...

    async def fetch_own_results(self) -> RemoteResponse: ...

    async def save_current_level(self, level: str, description: str) -> RemoteResponse: ...


class OfflineResultService:
    """Used when no backend is configured; writes fail softly, reads are empty."""

    async def save_result(self, level, description, score, answers, variant) -> RemoteResponse:
        return RemoteResponse(error=NOT_CONFIGURED)

    async def fetch_results_for_teacher(self) -> RemoteResponse:
        return RemoteResponse(data=[])

    async def fetch_own_results(self) -> RemoteResponse:
        return RemoteResponse(data=[])

    async def save_current_level(self, level, description) -> RemoteResponse:
        return RemoteResponse(error=NOT_CONFIGURED)


class SupabaseResultService:
    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        user: Optional[User],
        access_token: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: float = REMOTE_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not url or not anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required")
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.anon_key = anon_key
        self.access_token = access_token or anon_key
        self.user = user
        self.user_id = user_id
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _owner_filter(self) -> Dict[str, str]:
        if self.user_id:
            return {"user_id": f"eq.{self.user_id}"}
        return {}

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
    ) -> RemoteResponse:
        # a fresh client per call: fire-and-forget writes may run on their own loop
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.request(
                    method, f"{self.base_url}/{table}", params=params, json=json, headers=self._headers()
                )
                r.raise_for_status()
        except httpx.HTTPStatusError as http_err:
            log.warning("remote %s %s failed: %s", method, table, http_err)
            return RemoteResponse(error=f"Remote service rejected the request (status {http_err.response.status_code})")
        except httpx.HTTPError as net_err:
            log.warning("remote %s %s unreachable: %s", method, table, net_err)
            return RemoteResponse(error=CONNECT_FAILED)
        try:
            return RemoteResponse(data=r.json() if r.content else None)
        except ValueError:
            return RemoteResponse(error="Unexpected response from remote service")

    async def save_result(self, level, description, score, answers, variant) -> RemoteResponse:
        if self.user is None:
            return RemoteResponse(error=NOT_AUTHENTICATED)
        row: Dict[str, Any] = {
            "level": level,
            "description": description,
            "score": int(score),
            "variant": variant,
            "answers": [a.to_record() for a in answers],
        }
        if self.user_id:
            row["user_id"] = self.user_id
        resp = await self._request("POST", RESULTS_TABLE, json=[row])
        if resp.ok and isinstance(resp.data, list):
            resp.data = resp.data[0] if resp.data else None
        return resp

    async def fetch_results_for_teacher(self) -> RemoteResponse:
        if self.user is None:
            return RemoteResponse(data=[], error=NOT_AUTHENTICATED)
        if not self.user.is_teacher:
            return RemoteResponse(data=[], error=TEACHERS_ONLY)
        resp = await self._request(
            "GET",
            RESULTS_TABLE,
            params={"select": "*,profiles:user_id(email,full_name)", "order": "created_at.desc"},
        )
        if resp.ok and resp.data is None:
            resp.data = []
        return resp

    async def fetch_own_results(self) -> RemoteResponse:
        if self.user is None:
            return RemoteResponse(data=[], error=NOT_AUTHENTICATED)
        params = {"select": "*", "order": "created_at.desc", **self._owner_filter()}
        resp = await self._request("GET", RESULTS_TABLE, params=params)
        if resp.ok and resp.data is None:
            resp.data = []
        return resp

    async def save_current_level(self, level, description) -> RemoteResponse:
        if self.user is None:
            return RemoteResponse(error=NOT_AUTHENTICATED)
        params = {"id": f"eq.{self.user_id}"} if self.user_id else {"email": f"eq.{self.user.email}"}
        return await self._request(
            "PATCH",
            LEVEL_TABLE,
            params=params,
            json={"current_level": level, "current_level_description": description},
        )


def service_from_config(
    cfg: Dict[str, Any],
    user: Optional[User],
    *,
    user_id: Optional[str] = None,
    access_token: Optional[str] = None,
) -> RemoteResultService:
    url = cfg.get("SUPABASE_URL")
    key = cfg.get("SUPABASE_ANON_KEY")
    if not url or not key:
        return OfflineResultService()
    return SupabaseResultService(
        url,
        key,
        user=user,
        access_token=access_token or cfg.get("SUPABASE_ACCESS_TOKEN"),
        user_id=user_id,
        timeout=float(cfg.get("REMOTE_TIMEOUT_SEC", REMOTE_TIMEOUT_SEC)),
    )
