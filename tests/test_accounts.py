"""
Account service tests against an in-memory Supabase client.
"""

from __future__ import annotations

import pytest
from supabase import AuthError

from interview_platform.accounts import AccountService
from tests.mock_data import FakeSupabaseClient


@pytest.fixture
def supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def accounts(supabase: FakeSupabaseClient) -> AccountService:
    return AccountService(supabase)


class TestSignUp:
    @pytest.mark.asyncio
    async def test_creates_profile_without_password(
        self, accounts: AccountService, supabase: FakeSupabaseClient
    ) -> None:
        result = await accounts.sign_up("Ada", "ada@example.com", "s3cret!")

        assert result.success is True
        profile = supabase.tables["users"].rows[0]
        assert profile["name"] == "Ada"
        assert profile["email"] == "ada@example.com"
        assert "password" not in profile
        assert result.data is not None and result.data["id"] == profile["id"]

    @pytest.mark.asyncio
    async def test_existing_user(self, accounts: AccountService, supabase: FakeSupabaseClient) -> None:
        supabase.auth.sign_up_returns_no_user = True

        result = await accounts.sign_up("Ada", "ada@example.com", "s3cret!")

        assert result.success is False
        assert result.error == "User already exists"

    @pytest.mark.asyncio
    async def test_auth_error(self, accounts: AccountService, supabase: FakeSupabaseClient) -> None:
        supabase.auth.sign_up_error = AuthError("Password should be at least 6 characters", "weak_password")

        result = await accounts.sign_up("Ada", "ada@example.com", "123")

        assert result.success is False
        assert result.error == "Password should be at least 6 characters"
        assert "users" not in supabase.tables


class TestSignIn:
    @pytest.mark.asyncio
    async def test_returns_profile_and_token(self, accounts: AccountService) -> None:
        await accounts.sign_up("Ada", "ada@example.com", "s3cret!")

        result = await accounts.sign_in("ada@example.com", "s3cret!")

        assert result.success is True
        assert result.warning is None
        assert result.data is not None
        assert result.data["access_token"].startswith("token-")
        assert result.data["profile"]["name"] == "Ada"

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, accounts: AccountService) -> None:
        await accounts.sign_up("Ada", "ada@example.com", "s3cret!")

        result = await accounts.sign_in("ada@example.com", "wrong")

        assert result.success is False
        assert result.error == "Invalid email or password."

    @pytest.mark.asyncio
    async def test_missing_profile_is_a_warning(
        self, accounts: AccountService, supabase: FakeSupabaseClient
    ) -> None:
        await accounts.sign_up("Ada", "ada@example.com", "s3cret!")
        supabase.tables["users"].rows.clear()

        result = await accounts.sign_in("ada@example.com", "s3cret!")

        assert result.success is True
        assert result.warning == "Signed in but couldn't load profile"


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_known_token(self, accounts: AccountService) -> None:
        await accounts.sign_up("Ada", "ada@example.com", "s3cret!")
        signed_in = await accounts.sign_in("ada@example.com", "s3cret!")
        assert signed_in.data is not None

        result = await accounts.get_current_user(signed_in.data["access_token"])

        assert result.success is True
        assert result.data is not None
        assert result.data["email"] == "ada@example.com"
        assert result.data["profile"]["name"] == "Ada"

    @pytest.mark.asyncio
    async def test_unknown_token(self, accounts: AccountService) -> None:
        result = await accounts.get_current_user("not-a-token")

        assert result.success is False
        assert result.error == "No authenticated user found"
