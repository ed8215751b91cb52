"""Runtime configuration for the call service, loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from interview_call.settings import CallSettings


DEFAULT_VAPI_BASE_URL = "https://api.vapi.ai"

DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:3000",  # Next.js dev server
    "http://localhost:5173",  # Vite dev server
)


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime config for one call service instance."""

    vapi_api_key: str | None
    vapi_base_url: str
    vapi_workflow_id: str | None
    vapi_interviewer_assistant_id: str | None
    supabase_url: str | None
    supabase_key: str | None
    service_host: str
    service_port: int
    redirect_delay_seconds: float
    provider_timeout_seconds: float
    cors_origins: tuple[str, ...]

    def call_settings(self) -> CallSettings:
        """Settings handed to every call controller."""
        return CallSettings(
            web_token=self.vapi_api_key,
            workflow_id=self.vapi_workflow_id,
            interviewer_assistant_id=self.vapi_interviewer_assistant_id,
            redirect_delay_seconds=self.redirect_delay_seconds,
        )

    def require_supabase(self) -> tuple[str, str]:
        """Return Supabase URL and key, failing fast when either is missing."""
        if not self.supabase_url or not self.supabase_key:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_KEY are required to start the call service."
            )
        return self.supabase_url, self.supabase_key


def _optional(name: str) -> str | None:
    value = (os.environ.get(name) or "").strip()
    return value or None


def _positive_float(name: str, default: str) -> float:
    raw = (os.environ.get(name, default) or "").strip()
    if not raw:
        raise RuntimeError(f"{name} resolved to empty value.")
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number. Got: {raw}") from exc
    if value < 0:
        raise RuntimeError(f"{name} must not be negative. Got: {value}.")
    return value


def load_runtime_config(env_file: str | Path | None = None) -> RuntimeConfig:
    """
    Load runtime config from environment with strict validation.

    A .env file next to the project root (or `env_file`) is loaded first;
    variables already set in the environment win.
    """
    load_dotenv(env_file or Path(__file__).parent.parent / ".env")

    vapi_base_url = (os.environ.get("VAPI_BASE_URL", DEFAULT_VAPI_BASE_URL) or "").strip()
    if not vapi_base_url:
        raise RuntimeError("VAPI_BASE_URL resolved to empty value.")

    service_host = (os.environ.get("CALL_SERVICE_HOST", "0.0.0.0") or "").strip()
    if not service_host:
        raise RuntimeError("CALL_SERVICE_HOST resolved to empty value.")

    service_port_raw = (os.environ.get("CALL_SERVICE_PORT", "8765") or "").strip()
    if not service_port_raw:
        raise RuntimeError("CALL_SERVICE_PORT resolved to empty value.")

    try:
        service_port = int(service_port_raw)
    except ValueError as exc:
        raise RuntimeError(
            f"CALL_SERVICE_PORT must be an integer. Got: {service_port_raw}"
        ) from exc

    if service_port < 1 or service_port > 65535:
        raise RuntimeError(f"CALL_SERVICE_PORT must be in range 1-65535. Got: {service_port}.")

    provider_timeout = _positive_float("PROVIDER_TIMEOUT_SECONDS", "10.0")
    if provider_timeout == 0:
        raise RuntimeError("PROVIDER_TIMEOUT_SECONDS must be greater than zero.")

    cors_raw = _optional("CORS_ORIGINS")
    if cors_raw:
        cors_origins = tuple(origin.strip() for origin in cors_raw.split(",") if origin.strip())
    else:
        cors_origins = DEFAULT_CORS_ORIGINS

    return RuntimeConfig(
        vapi_api_key=_optional("VAPI_API_KEY"),
        vapi_base_url=vapi_base_url.rstrip("/"),
        vapi_workflow_id=_optional("VAPI_WORKFLOW_ID"),
        vapi_interviewer_assistant_id=_optional("VAPI_INTERVIEWER_ASSISTANT_ID"),
        supabase_url=_optional("SUPABASE_URL"),
        supabase_key=_optional("SUPABASE_KEY"),
        service_host=service_host,
        service_port=service_port,
        redirect_delay_seconds=_positive_float("REDIRECT_DELAY_SECONDS", "2.0"),
        provider_timeout_seconds=provider_timeout,
        cors_origins=cors_origins,
    )
