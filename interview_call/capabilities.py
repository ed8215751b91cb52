"""
Audio capability checks and microphone access.

The microphone lives on the host (a browser tab or a desktop client), so the
controller only sees two things: a capability report (`AudioEnvironment`) and
a `MicrophoneAccess` collaborator whose permission request may suspend.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .errors import CallEnvironmentError, MicrophonePermissionError
from .models import AudioEnvironment


__all__ = [
    "MicrophoneAccess",
    "ReportedMicrophoneAccess",
    "check_audio_environment",
    "permission_error_for",
]


logger = logging.getLogger(__name__)


MODERN_BROWSER_HINT = "Please use a modern browser like Chrome, Firefox, or Safari."

PERMISSION_MESSAGES: dict[str, str] = {
    "NotAllowedError": (
        "Microphone permission denied. Please allow microphone access in your "
        "browser settings and try again."
    ),
    "NotFoundError": "No microphone found. Please connect a microphone and try again.",
    "NotReadableError": (
        "Microphone is already in use by another application. Please close other "
        "applications using the microphone and try again."
    ),
}


def check_audio_environment(environment: AudioEnvironment) -> None:
    """
    Verify the host can capture real-time audio.

    Args:
        environment: Capability report from the host.

    Raises:
        CallEnvironmentError: With the user-facing reason on the first failed check.
    """
    if not environment.interactive:
        raise CallEnvironmentError("This feature is only available in the browser")

    protocol = environment.protocol.rstrip(":").lower()
    if protocol != "https" and environment.hostname != "localhost":
        raise CallEnvironmentError(
            "Microphone access requires HTTPS. Please use a secure connection."
        )

    if not environment.media_devices:
        if environment.legacy_get_user_media:
            raise CallEnvironmentError(
                "Your browser uses an older version of the Media API. Please update "
                "your browser or use a modern browser like Chrome, Firefox, or Safari."
            )
        raise CallEnvironmentError(
            f"Media devices are not supported in this browser. {MODERN_BROWSER_HINT}"
        )

    if not environment.get_user_media:
        raise CallEnvironmentError(
            f"Microphone access is not supported in this browser. {MODERN_BROWSER_HINT}"
        )


def permission_error_for(cause_name: str, detail: Optional[str] = None) -> MicrophonePermissionError:
    """
    Map a media-device failure name to a MicrophonePermissionError.

    Args:
        cause_name: DOMException-style name ("NotAllowedError", "NotFoundError", ...).
        detail: Free-form detail used for unrecognised causes.
    """
    message = PERMISSION_MESSAGES.get(cause_name)
    if message is None:
        message = f"Microphone access failed: {detail or cause_name}"
    return MicrophonePermissionError(message, cause_name=cause_name)


class MicrophoneAccess(Protocol):
    """Requests permission to use an audio input device."""

    async def request_permission(self) -> None:
        """
        Resolve when the device is granted.

        Raises:
            MicrophonePermissionError: When access is denied, missing or busy.
        """


class ReportedMicrophoneAccess:
    """
    Microphone access whose outcome was already decided by the host.

    The host performs the actual device request and posts the result; this
    class replays it as the permission step of the call.

    Example:
        >>> access = ReportedMicrophoneAccess(granted=False, error_name="NotAllowedError")
        >>> await access.request_permission()
        Traceback (most recent call last):
        MicrophonePermissionError: Microphone permission denied. ...
    """

    def __init__(
        self,
        granted: bool = True,
        error_name: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        self.granted = granted
        self.error_name = error_name
        self.error_message = error_message

    async def request_permission(self) -> None:
        if self.granted:
            logger.debug("Microphone permission granted by host")
            return
        error = permission_error_for(self.error_name or "UnknownError", self.error_message)
        logger.info("Microphone permission refused by host: %s", error.cause_name)
        raise error
