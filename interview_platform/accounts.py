"""Account pass-through to Supabase auth and the users profile table."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import AuthError, Client


logger = logging.getLogger(__name__)


USERS_TABLE = "users"


class AuthResult(BaseModel):
    """Outcome of an account operation: {success, data|error, warning?}."""

    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    warning: Optional[str] = None


def _dump(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return dict(value)


class AccountService:
    """Sign-up, sign-in and current-user lookup. Passwords never reach the profile table."""

    def __init__(self, client: Client, users_table: str = USERS_TABLE) -> None:
        self._client = client
        self.users_table = users_table

    async def sign_up(self, name: str, email: str, password: str) -> AuthResult:
        try:
            response = await asyncio.to_thread(
                self._client.auth.sign_up, {"email": email, "password": password}
            )
        except AuthError as exc:
            logger.error("Auth sign-up error for %s: %s", email, exc)
            return AuthResult(success=False, error=str(exc))

        if response.user is None:
            return AuthResult(success=False, error="User already exists")

        profile = {
            "id": response.user.id,
            "name": name,
            "email": email,
            "created_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        try:
            inserted = await asyncio.to_thread(
                lambda: self._client.table(self.users_table).insert(profile).execute()
            )
        except APIError as exc:
            logger.error("Profile creation error for %s: %s", email, exc)
            return AuthResult(success=False, error=exc.message or str(exc))

        rows = inserted.data or []
        logger.info("Created account %s", response.user.id)
        return AuthResult(success=True, data=rows[0] if rows else profile)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            response = await asyncio.to_thread(
                self._client.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except AuthError as exc:
            logger.info("Sign-in rejected for %s: %s", email, exc)
            if "Invalid login credentials" in str(exc):
                return AuthResult(success=False, error="Invalid email or password.")
            return AuthResult(success=False, error=str(exc))

        if response.user is None:
            return AuthResult(success=False, error="Sign in failed")

        data = _dump(response.user)
        if response.session is not None:
            data["access_token"] = response.session.access_token
        return await self._with_profile(
            response.user.id,
            data,
            warning="Signed in but couldn't load profile",
        )

    async def get_current_user(self, access_token: str) -> AuthResult:
        try:
            response = await asyncio.to_thread(self._client.auth.get_user, access_token)
        except AuthError as exc:
            logger.info("Get user error: %s", exc)
            return AuthResult(success=False, error=str(exc))

        if response is None or response.user is None:
            return AuthResult(success=False, error="No authenticated user found")

        return await self._with_profile(
            response.user.id,
            _dump(response.user),
            warning="User authenticated but profile not found",
        )

    async def _with_profile(self, user_id: str, data: dict[str, Any], *, warning: str) -> AuthResult:
        try:
            result = await asyncio.to_thread(
                lambda: self._client.table(self.users_table)
                .select("*")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except APIError as exc:
            logger.warning("Profile fetch failed for %s: %s", user_id, exc)
            return AuthResult(success=True, data=data, warning=warning)

        rows = result.data or []
        if not rows:
            logger.warning("Profile missing for %s", user_id)
            return AuthResult(success=True, data=data, warning=warning)
        return AuthResult(success=True, data={**data, "profile": rows[0]})
