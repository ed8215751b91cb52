"""
Error taxonomy for the voice interview call.

Every error carries the message shown to the user; the controller copies it
into its error note.
"""

from typing import Optional


__all__ = [
    "CallError",
    "CallEnvironmentError",
    "MicrophonePermissionError",
    "ConfigurationError",
    "ProviderError",
    "PersistenceError",
    "CallStateError",
]


class CallError(Exception):
    """Base exception for call lifecycle errors."""

    error_code = "CALL_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CallEnvironmentError(CallError):
    """Raised when the host cannot capture real-time audio at all."""

    error_code = "ENVIRONMENT_UNSUPPORTED"


class MicrophonePermissionError(CallError):
    """Raised when the microphone is denied, missing or busy."""

    error_code = "MICROPHONE_UNAVAILABLE"

    def __init__(self, message: str, cause_name: Optional[str] = None) -> None:
        self.cause_name = cause_name
        super().__init__(message)


class ConfigurationError(CallError):
    """Raised when an identifier needed to open the session is missing."""

    error_code = "CONFIGURATION_MISSING"


class ProviderError(CallError):
    """Raised when the voice provider fails to start or errors mid-call."""

    error_code = "PROVIDER_FAILED"


class PersistenceError(CallError):
    """Raised when saving interview data fails."""

    error_code = "PERSISTENCE_FAILED"


class CallStateError(CallError):
    """Raised on a transition the call state machine does not allow."""

    error_code = "INVALID_TRANSITION"
