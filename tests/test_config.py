"""
Runtime configuration tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from interview_platform.config import DEFAULT_CORS_ORIGINS, load_runtime_config


CONFIG_VARS = (
    "VAPI_API_KEY",
    "VAPI_BASE_URL",
    "VAPI_WORKFLOW_ID",
    "VAPI_INTERVIEWER_ASSISTANT_ID",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "CALL_SERVICE_HOST",
    "CALL_SERVICE_PORT",
    "REDIRECT_DELAY_SECONDS",
    "PROVIDER_TIMEOUT_SECONDS",
    "CORS_ORIGINS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Unset config variables (restored afterwards, even if a .env sets them)."""
    for name in CONFIG_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return tmp_path / ".env"


class TestLoadRuntimeConfig:
    def test_defaults(self, clean_env: Path) -> None:
        config = load_runtime_config(clean_env)

        assert config.vapi_api_key is None
        assert config.vapi_base_url == "https://api.vapi.ai"
        assert config.service_host == "0.0.0.0"
        assert config.service_port == 8765
        assert config.redirect_delay_seconds == 2.0
        assert config.provider_timeout_seconds == 10.0
        assert config.cors_origins == DEFAULT_CORS_ORIGINS

    def test_call_settings(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VAPI_API_KEY", "token")
        monkeypatch.setenv("VAPI_WORKFLOW_ID", "wf-1")
        monkeypatch.setenv("VAPI_INTERVIEWER_ASSISTANT_ID", "asst-1")
        monkeypatch.setenv("REDIRECT_DELAY_SECONDS", "0.5")

        settings = load_runtime_config(clean_env).call_settings()

        assert settings.web_token == "token"
        assert settings.workflow_id == "wf-1"
        assert settings.interviewer_assistant_id == "asst-1"
        assert settings.redirect_delay_seconds == 0.5

    def test_blank_identifiers_are_missing(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VAPI_WORKFLOW_ID", "   ")

        assert load_runtime_config(clean_env).vapi_workflow_id is None

    def test_dotenv_file_is_read(self, clean_env: Path) -> None:
        clean_env.write_text("VAPI_WORKFLOW_ID=wf-from-file\nCALL_SERVICE_PORT=9000\n")

        config = load_runtime_config(clean_env)

        assert config.vapi_workflow_id == "wf-from-file"
        assert config.service_port == 9000

    def test_environment_wins_over_dotenv(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        clean_env.write_text("VAPI_WORKFLOW_ID=wf-from-file\n")
        monkeypatch.setenv("VAPI_WORKFLOW_ID", "wf-from-env")

        assert load_runtime_config(clean_env).vapi_workflow_id == "wf-from-env"

    def test_cors_origins_split(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CORS_ORIGINS", "https://app.example.com, https://admin.example.com,")

        config = load_runtime_config(clean_env)

        assert config.cors_origins == ("https://app.example.com", "https://admin.example.com")

    @pytest.mark.parametrize("port", ["0", "70000", "eighty"])
    def test_invalid_port(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch, port: str) -> None:
        monkeypatch.setenv("CALL_SERVICE_PORT", port)

        with pytest.raises(RuntimeError, match="CALL_SERVICE_PORT"):
            load_runtime_config(clean_env)

    def test_zero_provider_timeout(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROVIDER_TIMEOUT_SECONDS", "0")

        with pytest.raises(RuntimeError, match="greater than zero"):
            load_runtime_config(clean_env)

    def test_negative_redirect_delay(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIRECT_DELAY_SECONDS", "-1")

        with pytest.raises(RuntimeError, match="REDIRECT_DELAY_SECONDS"):
            load_runtime_config(clean_env)


class TestRequireSupabase:
    def test_missing(self, clean_env: Path) -> None:
        with pytest.raises(RuntimeError, match="SUPABASE_URL"):
            load_runtime_config(clean_env).require_supabase()

    def test_present(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon-key")

        assert load_runtime_config(clean_env).require_supabase() == (
            "https://project.supabase.co",
            "anon-key",
        )
