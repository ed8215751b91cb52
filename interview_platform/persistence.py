"""Interview persistence: Supabase table access and the save-interview HTTP client."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from interview_call.errors import PersistenceError
from interview_call.models import InterviewRecord, SaveInterviewRequest, SaveResult
from interview_platform.config import RuntimeConfig


logger = logging.getLogger(__name__)


INTERVIEWS_TABLE = "interviews"


class PersistenceService(Protocol):
    """Save boundary used by the call controller when a call ends."""

    async def save_interview(self, request: SaveInterviewRequest) -> SaveResult:
        """Persist one interview configuration. Failures come back as success=False."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _first_row(data: Any) -> dict[str, Any] | None:
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


class SupabaseInterviewStore:
    """Interviews table on Supabase. The sync client runs in worker threads."""

    def __init__(self, client: Client, table: str = INTERVIEWS_TABLE) -> None:
        self._client = client
        self.table = table

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "SupabaseInterviewStore":
        url, key = config.require_supabase()
        return cls(create_client(url, key))

    @property
    def client(self) -> Client:
        return self._client

    async def save_interview(self, request: SaveInterviewRequest) -> SaveResult:
        row = {
            "role": request.role,
            "type": request.type,
            "level": request.level,
            "amount": request.amount,
            "userid": request.user_id,
            "techstack": list(request.techstack),
            "createdAt": _utc_now(),
        }
        try:
            response = await asyncio.to_thread(self._insert, row)
        except (APIError, httpx.HTTPError) as exc:
            logger.error("Failed to save interview for user %s: %s", request.user_id, exc)
            return SaveResult(success=False, error=str(exc))

        logger.info("Saved interview for user %s (role=%s)", request.user_id, request.role)
        return SaveResult(success=True, data=_first_row(response.data))

    async def insert_interview(self, record: InterviewRecord) -> dict[str, Any]:
        """
        Insert a generated interview record.

        Raises:
            PersistenceError: If the insert fails.
        """
        try:
            response = await asyncio.to_thread(self._insert, record.model_dump(by_alias=True))
        except (APIError, httpx.HTTPError) as exc:
            logger.error("Failed to store generated interview: %s", exc)
            raise PersistenceError("Failed to save interview") from exc
        return _first_row(response.data) or {}

    async def list_interviews(self, user_id: str | None = None) -> list[dict[str, Any]]:
        """
        List interviews, newest first, optionally for one user.

        Raises:
            PersistenceError: If the query fails.
        """

        def _query() -> Any:
            query = self._client.table(self.table).select("*")
            if user_id:
                query = query.eq("userid", user_id)
            return query.order("createdAt", desc=True).execute()

        try:
            response = await asyncio.to_thread(_query)
        except (APIError, httpx.HTTPError) as exc:
            logger.error("Failed to list interviews: %s", exc)
            raise PersistenceError("Failed to load interviews") from exc
        return list(response.data or [])

    async def get_interview(self, interview_id: str) -> dict[str, Any] | None:
        """
        Fetch one interview by id, or None when it does not exist.

        Raises:
            PersistenceError: If the query fails.
        """

        def _query() -> Any:
            return (
                self._client.table(self.table)
                .select("*")
                .eq("id", interview_id)
                .limit(1)
                .execute()
            )

        try:
            response = await asyncio.to_thread(_query)
        except (APIError, httpx.HTTPError) as exc:
            logger.error("Failed to load interview %s: %s", interview_id, exc)
            raise PersistenceError("Failed to load interview") from exc
        return _first_row(response.data)

    def _insert(self, row: dict[str, Any]) -> Any:
        return self._client.table(self.table).insert(row).execute()


class SaveInterviewClient:
    """Save interviews through a running call service (`POST /api/save-interview`)."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def save_interview(self, request: SaveInterviewRequest) -> SaveResult:
        """
        Post the request and map the response to a SaveResult.

        Raises:
            PersistenceError: On transport errors or a non-JSON response body.
        """
        url = f"{self.base_url}/api/save-interview"
        payload = request.model_dump(by_alias=True)
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, timeout=self.timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Failed to reach save endpoint: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise PersistenceError(
                f"Save endpoint returned a non-JSON response (HTTP {response.status_code})"
            ) from exc

        if response.status_code >= 400 or not body.get("success"):
            return SaveResult(
                success=False,
                error=str(body.get("error") or f"HTTP {response.status_code}"),
            )
        data = body.get("data")
        return SaveResult(success=True, data=data if isinstance(data, dict) else None)
