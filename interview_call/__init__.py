"""
Voice Interview Call Package.

Drives one AI voice mock-interview call: environment and microphone checks,
the idle -> connecting -> active -> finished state machine over a voice
provider, transcript relay, and the one-shot save of the interview setup.

Components:
    - CallSessionController: State machine owning one call
    - CallRegistry: Live calls of a service process, routed by provider call id
    - ProviderEventStream: Pub/sub of provider events to controllers
    - QuestionGenerator: Question source built on the OpenAI Agents SDK
    - Models: Pydantic models for events, transcript, config and persistence
    - Errors: CallError taxonomy carrying user-facing messages

Example:
    >>> from interview_call import CallSessionController, CallSettings, InterviewConfig
    >>>
    >>> controller = CallSessionController(provider, microphone, store, CallSettings(...))
    >>> async with controller:
    ...     await controller.start(InterviewConfig(role="Backend Engineer", ...))
"""

from .models import (
    AudioEnvironment,
    CallSnapshot,
    CallState,
    GenerateInterviewRequest,
    InterviewConfig,
    InterviewRecord,
    ProviderCall,
    ProviderEvent,
    ProviderFault,
    SaveInterviewRequest,
    SaveResult,
    SessionDescriptor,
    SessionEnded,
    SessionKind,
    SessionStarted,
    Speaker,
    SpeechEnded,
    SpeechStarted,
    TranscriptEntry,
    TranscriptFinal,
    TranscriptInterim,
)

from .errors import (
    CallEnvironmentError,
    CallError,
    CallStateError,
    ConfigurationError,
    MicrophonePermissionError,
    PersistenceError,
    ProviderError,
)

from .capabilities import (
    MicrophoneAccess,
    ReportedMicrophoneAccess,
    check_audio_environment,
)

from .events import ProviderEventStream

from .settings import CallSettings

from .controller import CallSessionController

from .registry import CallEntry, CallRegistry


__all__ = [
    # Models
    "AudioEnvironment",
    "CallSnapshot",
    "CallState",
    "GenerateInterviewRequest",
    "InterviewConfig",
    "InterviewRecord",
    "ProviderCall",
    "ProviderEvent",
    "ProviderFault",
    "SaveInterviewRequest",
    "SaveResult",
    "SessionDescriptor",
    "SessionEnded",
    "SessionKind",
    "SessionStarted",
    "Speaker",
    "SpeechEnded",
    "SpeechStarted",
    "TranscriptEntry",
    "TranscriptFinal",
    "TranscriptInterim",
    # Errors
    "CallEnvironmentError",
    "CallError",
    "CallStateError",
    "ConfigurationError",
    "MicrophonePermissionError",
    "PersistenceError",
    "ProviderError",
    # Capabilities
    "MicrophoneAccess",
    "ReportedMicrophoneAccess",
    "check_audio_environment",
    # Events
    "ProviderEventStream",
    # Controller
    "CallSettings",
    "CallSessionController",
    "CallEntry",
    "CallRegistry",
]

__version__ = "0.1.0"
