"""Interview call platform: configuration, voice providers, persistence and accounts."""

from interview_platform.accounts import AccountService, AuthResult
from interview_platform.config import RuntimeConfig, load_runtime_config
from interview_platform.persistence import (
    PersistenceService,
    SaveInterviewClient,
    SupabaseInterviewStore,
)
from interview_platform.providers import (
    ScriptedVoiceProvider,
    VapiVoiceProvider,
    VoiceSessionProvider,
)

__all__ = [
    "AccountService",
    "AuthResult",
    "RuntimeConfig",
    "load_runtime_config",
    "PersistenceService",
    "SaveInterviewClient",
    "SupabaseInterviewStore",
    "ScriptedVoiceProvider",
    "VapiVoiceProvider",
    "VoiceSessionProvider",
]
