"""
Audio capability and microphone permission tests.
"""

from __future__ import annotations

import pytest

from interview_call.capabilities import (
    PERMISSION_MESSAGES,
    ReportedMicrophoneAccess,
    check_audio_environment,
    permission_error_for,
)
from interview_call.errors import CallEnvironmentError, MicrophonePermissionError
from interview_call.models import AudioEnvironment


class TestCheckAudioEnvironment:
    """Checks run in order and report the first failure."""

    def test_modern_secure_browser_passes(self) -> None:
        check_audio_environment(AudioEnvironment())

    def test_plain_http_localhost_passes(self) -> None:
        check_audio_environment(AudioEnvironment(protocol="http:", hostname="localhost"))

    def test_non_interactive_host(self) -> None:
        with pytest.raises(CallEnvironmentError) as exc_info:
            check_audio_environment(AudioEnvironment(interactive=False, protocol="http:"))

        assert exc_info.value.message == "This feature is only available in the browser"

    def test_insecure_origin(self) -> None:
        with pytest.raises(CallEnvironmentError) as exc_info:
            check_audio_environment(AudioEnvironment(protocol="http:", hostname="10.0.0.5"))

        assert "requires HTTPS" in exc_info.value.message

    def test_legacy_media_api(self) -> None:
        env = AudioEnvironment(media_devices=False, legacy_get_user_media=True)

        with pytest.raises(CallEnvironmentError) as exc_info:
            check_audio_environment(env)

        assert exc_info.value.message.startswith("Your browser uses an older version of the Media API.")

    def test_no_media_devices(self) -> None:
        with pytest.raises(CallEnvironmentError) as exc_info:
            check_audio_environment(AudioEnvironment(media_devices=False))

        assert exc_info.value.message.startswith("Media devices are not supported")

    def test_no_get_user_media(self) -> None:
        with pytest.raises(CallEnvironmentError) as exc_info:
            check_audio_environment(AudioEnvironment(get_user_media=False))

        assert exc_info.value.message.startswith("Microphone access is not supported")
        assert exc_info.value.error_code == "ENVIRONMENT_UNSUPPORTED"


class TestPermissionErrors:
    """Device failure names map to user-facing messages."""

    @pytest.mark.parametrize("cause_name", sorted(PERMISSION_MESSAGES))
    def test_known_causes(self, cause_name: str) -> None:
        error = permission_error_for(cause_name)

        assert error.message == PERMISSION_MESSAGES[cause_name]
        assert error.cause_name == cause_name

    def test_unknown_cause_uses_detail(self) -> None:
        error = permission_error_for("AbortError", "device reset")

        assert error.message == "Microphone access failed: device reset"

    def test_unknown_cause_without_detail(self) -> None:
        error = permission_error_for("SecurityError")

        assert error.message == "Microphone access failed: SecurityError"


class TestReportedMicrophoneAccess:
    @pytest.mark.asyncio
    async def test_granted(self) -> None:
        await ReportedMicrophoneAccess(granted=True).request_permission()

    @pytest.mark.asyncio
    async def test_denied(self) -> None:
        access = ReportedMicrophoneAccess(granted=False, error_name="NotAllowedError")

        with pytest.raises(MicrophonePermissionError) as exc_info:
            await access.request_permission()

        assert exc_info.value.message.startswith("Microphone permission denied.")
        assert exc_info.value.error_code == "MICROPHONE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_denied_without_name(self) -> None:
        access = ReportedMicrophoneAccess(granted=False, error_message="blocked by policy")

        with pytest.raises(MicrophonePermissionError) as exc_info:
            await access.request_permission()

        assert exc_info.value.message == "Microphone access failed: blocked by policy"
