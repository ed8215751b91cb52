"""
Persistence tests: the Supabase interviews store (against an in-memory
client) and the save-interview HTTP client (against httpx.MockTransport).
"""

from __future__ import annotations

import json

import httpx
import pytest
from postgrest.exceptions import APIError

from interview_call.errors import PersistenceError
from interview_call.models import InterviewRecord, SaveInterviewRequest
from interview_platform.persistence import SaveInterviewClient, SupabaseInterviewStore
from tests.mock_data import FakeSupabaseClient, make_config


def save_request() -> SaveInterviewRequest:
    request = make_config().to_save_request()
    assert request is not None
    return request


# =============================================================================
# Supabase Store
# =============================================================================


class TestSupabaseSave:
    @pytest.mark.asyncio
    async def test_save_inserts_row(self) -> None:
        client = FakeSupabaseClient()
        store = SupabaseInterviewStore(client)

        result = await store.save_interview(save_request())

        assert result.success is True
        rows = client.tables["interviews"].rows
        assert len(rows) == 1
        row = rows[0]
        assert row["role"] == "Frontend Developer"
        assert row["level"] == "Junior"
        assert row["userid"] == "user-42"
        assert row["techstack"] == ["React", "TypeScript"]
        assert row["createdAt"].endswith("Z")
        assert result.data is not None and result.data["id"] == row["id"]

    @pytest.mark.asyncio
    async def test_save_failure_is_reported(self) -> None:
        client = FakeSupabaseClient()
        store = SupabaseInterviewStore(client)
        client.table("interviews")
        client.tables["interviews"].error = APIError({"message": "permission denied", "code": "42501"})

        result = await store.save_interview(save_request())

        assert result.success is False
        assert client.tables["interviews"].rows == []


class TestSupabaseInterviews:
    @pytest.mark.asyncio
    async def test_insert_interview_uses_column_names(self) -> None:
        client = FakeSupabaseClient()
        store = SupabaseInterviewStore(client)
        record = InterviewRecord(
            role="Backend Engineer",
            type="Technical",
            level="Senior",
            techstack=["Go"],
            questions=["Q1", "Q2"],
            userid="u1",
        )

        stored = await store.insert_interview(record)

        assert stored["questions"] == ["Q1", "Q2"]
        assert stored["finalized"] is True
        assert "createdAt" in stored

    @pytest.mark.asyncio
    async def test_insert_interview_failure_raises(self) -> None:
        client = FakeSupabaseClient()
        client.table("interviews")
        client.tables["interviews"].error = APIError({"message": "boom"})
        store = SupabaseInterviewStore(client)

        with pytest.raises(PersistenceError):
            await store.insert_interview(
                InterviewRecord(role="r", type="t", level="l", userid="u")
            )

    @pytest.mark.asyncio
    async def test_list_filters_by_user_newest_first(self) -> None:
        client = FakeSupabaseClient()
        store = SupabaseInterviewStore(client)
        for user, created in (("u1", "2026-01-01T00:00:00Z"), ("u2", "2026-02-01T00:00:00Z"), ("u1", "2026-03-01T00:00:00Z")):
            await store.insert_interview(
                InterviewRecord(role="r", type="t", level="l", userid=user, createdAt=created)
            )

        rows = await store.list_interviews("u1")

        assert [row["createdAt"] for row in rows] == ["2026-03-01T00:00:00Z", "2026-01-01T00:00:00Z"]
        assert len(await store.list_interviews()) == 3

    @pytest.mark.asyncio
    async def test_get_interview(self) -> None:
        client = FakeSupabaseClient()
        store = SupabaseInterviewStore(client)
        stored = await store.insert_interview(
            InterviewRecord(role="r", type="t", level="l", userid="u1", questions=["Q"])
        )

        found = await store.get_interview(str(stored["id"]))
        missing = await store.get_interview("999")

        assert found is not None and found["questions"] == ["Q"]
        assert missing is None

    @pytest.mark.asyncio
    async def test_query_failure_raises(self) -> None:
        client = FakeSupabaseClient()
        client.table("interviews")
        client.tables["interviews"].error = APIError({"message": "timeout"})
        store = SupabaseInterviewStore(client)

        with pytest.raises(PersistenceError):
            await store.list_interviews()


# =============================================================================
# Save Endpoint Client
# =============================================================================


def http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSaveInterviewClient:
    @pytest.mark.asyncio
    async def test_posts_aliased_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "data": {"id": 7}})

        async with http_client(handler) as client:
            result = await SaveInterviewClient("http://service/", client=client).save_interview(save_request())

        assert result.success is True
        assert result.data == {"id": 7}
        assert str(seen[0].url) == "http://service/api/save-interview"
        body = json.loads(seen[0].content)
        assert body["userId"] == "user-42"
        assert body["level"] == "Junior"

    @pytest.mark.asyncio
    async def test_error_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"success": False, "error": "Failed to save interview"})

        async with http_client(handler) as client:
            result = await SaveInterviewClient("http://service", client=client).save_interview(save_request())

        assert result.success is False
        assert result.error == "Failed to save interview"

    @pytest.mark.asyncio
    async def test_non_json_response_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        async with http_client(handler) as client:
            with pytest.raises(PersistenceError):
                await SaveInterviewClient("http://service", client=client).save_interview(save_request())

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with http_client(handler) as client:
            with pytest.raises(PersistenceError):
                await SaveInterviewClient("http://service", client=client).save_interview(save_request())
