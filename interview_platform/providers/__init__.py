"""Voice session providers."""

from interview_platform.providers.base import VoiceSessionProvider
from interview_platform.providers.scripted import ScriptedVoiceProvider
from interview_platform.providers.vapi import (
    VapiVoiceProvider,
    extract_call_id,
    normalize_vapi_message,
)

__all__ = [
    "VoiceSessionProvider",
    "ScriptedVoiceProvider",
    "VapiVoiceProvider",
    "extract_call_id",
    "normalize_vapi_message",
]
