"""
Pydantic models for the voice interview call.

Defines the call state machine values, transcript entries, the interview
configuration supplied by the host, the closed set of provider events, and
the request/response shapes exchanged with the persistence and question
generation boundaries.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


def _format_utc_timestamp() -> str:
    """Return current UTC timestamp as ISO 8601 string with 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _split_tech_stack(value: object) -> object:
    """Accept 'React, Node.js' style strings as well as sequences."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple)):
        return tuple(str(item).strip() for item in value if str(item).strip())
    return value


class CallState(str, Enum):
    """
    Lifecycle of one voice interview call.

    Attributes:
        IDLE: Initial state; also the state after a failed start.
        CONNECTING: Device acquired, provider session being opened.
        ACTIVE: Provider session established.
        FINISHED: Terminal. The controller is discarded afterwards.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    FINISHED = "finished"


class Speaker(str, Enum):
    """Who produced a transcript line."""

    CALLER = "caller"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TranscriptEntry(BaseModel):
    """One finalized utterance attributed to a speaker."""

    speaker: Speaker
    text: str

    model_config = {"frozen": True}


class InterviewConfig(BaseModel):
    """
    Interview setup chosen by the user before the call starts.

    Only read once by the controller, at call end, to build the save request.
    Every field is optional here because a missing field means "skip the
    save", not "reject the call".

    Example:
        >>> config = InterviewConfig(
        ...     role="Backend Engineer",
        ...     type="Technical",
        ...     seniority_level="Intermediate",
        ...     tech_stack="Python, PostgreSQL",
        ...     user_reference="u1",
        ... )
        >>> config.tech_stack
        ('Python', 'PostgreSQL')
    """

    role: Optional[str] = None
    type: Optional[str] = None
    seniority_level: Optional[str] = None
    duration_hint: Optional[str] = None
    tech_stack: tuple[str, ...] = Field(default_factory=tuple)
    user_reference: Optional[str] = None
    user_name: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("tech_stack", mode="before")
    @classmethod
    def _normalize_tech_stack(cls, value: object) -> object:
        return _split_tech_stack(value)

    def to_save_request(self) -> Optional["SaveInterviewRequest"]:
        """
        Build the persistence request, or None when a required field is absent.

        Required: role, type, seniority level and user reference.
        """
        if not (self.role and self.type and self.seniority_level and self.user_reference):
            return None
        return SaveInterviewRequest(
            role=self.role,
            type=self.type,
            level=self.seniority_level,
            amount=self.duration_hint or None,
            user_id=self.user_reference,
            techstack=list(self.tech_stack),
        )


# =============================================================================
# Provider Events (closed tagged variant)
# =============================================================================


class SessionStarted(BaseModel):
    """Provider reports the call is live."""

    kind: Literal["session_started"] = "session_started"

    model_config = {"frozen": True}


class SessionEnded(BaseModel):
    """Provider reports the call is over."""

    kind: Literal["session_ended"] = "session_ended"
    reason: Optional[str] = None

    model_config = {"frozen": True}


class TranscriptFinal(BaseModel):
    """A transcript line the provider marked final."""

    kind: Literal["transcript_final"] = "transcript_final"
    speaker: Speaker
    text: str

    model_config = {"frozen": True}


class TranscriptInterim(BaseModel):
    """A partial transcript line; never retained."""

    kind: Literal["transcript_interim"] = "transcript_interim"
    speaker: Speaker
    text: str

    model_config = {"frozen": True}


class SpeechStarted(BaseModel):
    kind: Literal["speech_started"] = "speech_started"
    speaker: Optional[Speaker] = None

    model_config = {"frozen": True}


class SpeechEnded(BaseModel):
    kind: Literal["speech_ended"] = "speech_ended"
    speaker: Optional[Speaker] = None

    model_config = {"frozen": True}


class ProviderFault(BaseModel):
    """Provider-side error notification. Does not end the call by itself."""

    kind: Literal["provider_fault"] = "provider_fault"
    message: str
    code: Optional[str] = None

    model_config = {"frozen": True}


ProviderEvent = Annotated[
    Union[
        SessionStarted,
        SessionEnded,
        TranscriptFinal,
        TranscriptInterim,
        SpeechStarted,
        SpeechEnded,
        ProviderFault,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# Provider Session Shapes
# =============================================================================


class SessionKind(str, Enum):
    """How the provider should run the call."""

    WORKFLOW = "workflow"
    ASSISTANT = "assistant"


class SessionDescriptor(BaseModel):
    """What the provider should run: a generation workflow or a fixed agent."""

    kind: SessionKind
    identifier: str = Field(..., min_length=1)

    model_config = {"frozen": True}


class ProviderCall(BaseModel):
    """Handle returned by the provider once a session is opened."""

    call_id: str
    web_call_url: Optional[str] = None
    control_url: Optional[str] = None

    model_config = {"frozen": True}


class AudioEnvironment(BaseModel):
    """
    Audio capabilities reported by the host that captures the microphone.

    The defaults describe a modern browser on a secure origin.
    """

    interactive: bool = Field(default=True, description="Host can show UI and capture audio")
    protocol: str = Field(default="https:", description="Origin protocol, e.g. 'https:'")
    hostname: str = Field(default="localhost", description="Origin hostname")
    media_devices: bool = Field(default=True, description="navigator.mediaDevices present")
    get_user_media: bool = Field(default=True, description="mediaDevices.getUserMedia present")
    legacy_get_user_media: bool = Field(
        default=False,
        description="Only the deprecated navigator.getUserMedia family is present",
    )


# =============================================================================
# Persistence Shapes
# =============================================================================


class SaveInterviewRequest(BaseModel):
    """Payload for saving a completed interview configuration."""

    role: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    level: str = Field(..., min_length=1)
    amount: Optional[str] = None
    user_id: str = Field(..., min_length=1, alias="userId")
    techstack: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class SaveResult(BaseModel):
    """Outcome of a save call: {success, data|error}."""

    success: bool
    data: Optional[dict] = None
    error: Optional[str] = None


class GenerateInterviewRequest(BaseModel):
    """Input of the question generation call."""

    role: str = Field(..., min_length=1)
    level: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    techstack: tuple[str, ...] = Field(default_factory=tuple)
    amount: int = Field(default=5, ge=1, le=30, description="Desired number of questions")
    user_id: str = Field(..., min_length=1, alias="userID")

    model_config = {"populate_by_name": True}

    @field_validator("techstack", mode="before")
    @classmethod
    def _normalize_techstack(cls, value: object) -> object:
        return _split_tech_stack(value)


class InterviewRecord(BaseModel):
    """A generated interview as stored in the interviews table."""

    role: str
    type: str
    level: str
    techstack: list[str] = Field(default_factory=list)
    questions: list[str] = Field(default_factory=list)
    userid: str
    finalized: bool = True
    created_at: str = Field(default_factory=_format_utc_timestamp, alias="createdAt")

    model_config = {"populate_by_name": True}


# =============================================================================
# Host View
# =============================================================================


class CallSnapshot(BaseModel):
    """Read-only view of a controller for hosts and HTTP responses."""

    state: CallState
    error_note: Optional[str] = None
    is_speaking: bool = False
    last_message: Optional[str] = None
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    provider_call_id: Optional[str] = None
    redirect_requested: bool = False
