"""
Voice Interview Call Service

Hosts voice interview calls for the mock-interview front end: starts calls on
the voice provider, routes provider webhooks to the owning call controller,
saves interview setups, generates question lists, and passes account
operations through to Supabase.

Endpoints:
    POST /calls                 - Start a call (generate or interview mode)
    GET  /calls/{call_id}       - Call snapshot
    POST /calls/{call_id}/stop  - End a call
    POST /vapi/webhook          - Provider server messages
    POST /api/save-interview    - Save an interview setup
    GET|POST /api/vapi/generate - Generate and store interview questions
    GET  /interviews            - List stored interviews
    GET  /interviews/{id}       - One stored interview
    POST /auth/sign-up          - Create an account
    POST /auth/sign-in          - Sign in
    GET  /auth/me               - Current user from bearer token
    GET  /health                - Health check
    GET  /stats                 - Statistics

Internal binding: configured by CALL_SERVICE_HOST/CALL_SERVICE_PORT (default 0.0.0.0:8765)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Callable, Literal, TypedDict

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from interview_call import (
    AudioEnvironment,
    CallRegistry,
    CallSessionController,
    CallSnapshot,
    CallState,
    GenerateInterviewRequest,
    InterviewConfig,
    PersistenceError,
    ReportedMicrophoneAccess,
    SaveInterviewRequest,
)
from interview_call.questions import QuestionGenerator, generate_interview
from interview_platform import (
    AccountService,
    AuthResult,
    RuntimeConfig,
    SupabaseInterviewStore,
    VapiVoiceProvider,
    VoiceSessionProvider,
    load_runtime_config,
)
from interview_platform.providers import extract_call_id

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


SERVICE_NAME = "interview-call-service"
SERVICE_VERSION = "0.1.0"

ProviderFactory = Callable[[], VoiceSessionProvider]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Request Models
# =============================================================================


class MicrophoneReport(BaseModel):
    """Outcome of the host's microphone permission request."""

    granted: bool = Field(default=True, description="Whether the device was granted")
    error_name: str | None = Field(
        default=None, description="DOMException name, e.g. NotAllowedError"
    )
    error_message: str | None = Field(default=None, description="Free-form failure detail")


class CallStartRequest(BaseModel):
    """Request to start a voice interview call."""

    mode: Literal["generate", "interview"] = Field(
        ..., description="generate: question-generation workflow; interview: fixed questions"
    )
    user_name: str | None = Field(default=None, description="Display name read by the assistant")
    user_id: str | None = Field(default=None, description="Account id the interview belongs to")
    interview: InterviewConfig | None = Field(
        default=None, description="Interview setup saved when the call ends"
    )
    questions: list[str] = Field(default_factory=list, description="Questions for interview mode")
    interview_id: str | None = Field(
        default=None, description="Stored interview whose questions are used in interview mode"
    )
    environment: AudioEnvironment = Field(default_factory=AudioEnvironment)
    microphone: MicrophoneReport = Field(default_factory=MicrophoneReport)


class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)


class SignInRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


# =============================================================================
# Response Models
# =============================================================================


class BaseResponse(BaseModel):
    """Base response model with common fields."""

    ok: bool = Field(..., description="Whether the operation succeeded")
    message: str | None = Field(default=None, description="Optional status message")


class ErrorResponse(BaseModel):
    """Standard error response."""

    ok: bool = Field(default=False)
    error: str = Field(..., description="Error description")
    error_code: str | None = Field(default=None, description="Machine-readable error code")


class CallResponse(BaseResponse):
    """A call and its current snapshot."""

    call_id: str = Field(..., description="Local call identifier")
    call: CallSnapshot


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="Current server timestamp")
    live_calls: int = Field(..., description="Calls currently held by the registry")
    provider_configured: bool = Field(..., description="Whether a provider token is set")
    workflow_configured: bool = Field(..., description="Whether generation mode can start")
    assistant_configured: bool = Field(..., description="Whether interview mode can start")


class StatsResponse(BaseModel):
    """Statistics response."""

    stats: dict[str, Any] = Field(..., description="Service statistics")
    calls: dict[str, int] = Field(..., description="Call registry counts")


# =============================================================================
# Application State (Type-safe Lifespan State)
# =============================================================================


class AppStats(TypedDict):
    """Application statistics tracking."""

    calls_started: int
    calls_failed: int
    calls_stopped: int
    webhook_messages: int
    webhook_unrouted: int
    interviews_saved: int
    save_failures: int
    interviews_generated: int
    started_at: str


class AppState(TypedDict):
    """Type-safe application state managed by lifespan."""

    config: RuntimeConfig
    registry: CallRegistry
    store: SupabaseInterviewStore
    generator: QuestionGenerator
    accounts: AccountService
    provider_factory: ProviderFactory
    stats: AppStats


def get_initial_stats() -> AppStats:
    """Create initial statistics dictionary."""
    return AppStats(
        calls_started=0,
        calls_failed=0,
        calls_stopped=0,
        webhook_messages=0,
        webhook_unrouted=0,
        interviews_saved=0,
        save_failures=0,
        interviews_generated=0,
        started_at=_utc_now(),
    )


# =============================================================================
# Custom Exceptions
# =============================================================================


class CallServiceError(Exception):
    """Base exception for call service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class CallNotFoundError(CallServiceError):
    """Raised when a call id is neither live nor in history."""

    def __init__(self, call_id: str) -> None:
        super().__init__(
            message=f"Call '{call_id}' not found.",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="CALL_NOT_FOUND",
        )


# =============================================================================
# Dependencies
# =============================================================================


def get_app_state(request: Request) -> AppState:
    """
    Dependency to retrieve application state from request.

    Raises:
        RuntimeError: If state is not properly initialized.
    """
    state = getattr(request, "state", None)
    if state is None:
        raise RuntimeError("Application state not initialized")
    return AppState(
        config=state.config,
        registry=state.registry,
        store=state.store,
        generator=state.generator,
        accounts=state.accounts,
        provider_factory=state.provider_factory,
        stats=state.stats,
    )


# Type alias for dependency injection
AppStateDep = Annotated[AppState, Depends(get_app_state)]


# =============================================================================
# Exception Handlers
# =============================================================================


async def call_service_error_handler(request: Request, exc: CallServiceError) -> JSONResponse:
    """Handle CallServiceError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            ok=False,
            error=exc.message,
            error_code=exc.error_code,
        ).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            ok=False,
            error="Internal server error",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )


# =============================================================================
# Endpoints
# =============================================================================

router = APIRouter()


async def _resolve_questions(request: CallStartRequest, state: AppState) -> list[str]:
    if request.questions or not request.interview_id:
        return list(request.questions)
    try:
        interview = await state["store"].get_interview(request.interview_id)
    except PersistenceError as exc:
        raise CallServiceError(exc.message, status.HTTP_502_BAD_GATEWAY, exc.error_code) from exc
    if interview is None:
        raise CallServiceError(
            f"Interview '{request.interview_id}' not found.",
            status.HTTP_404_NOT_FOUND,
            "INTERVIEW_NOT_FOUND",
        )
    return [str(q) for q in interview.get("questions") or []]


@router.post("/calls", response_model=CallResponse)
async def start_call(request: CallStartRequest, state: AppStateDep) -> CallResponse:
    """
    Start a voice interview call.

    In generate mode the interview setup (plus user name/id) drives the
    question-generation workflow. In interview mode the questions (or the
    stored interview's questions) are bound to the interviewer assistant.

    Raises:
        CallServiceError: 422 with the call's error code when the call could not start.
    """
    registry = state["registry"]
    stats = state["stats"]

    config = request.interview or InterviewConfig()
    overrides = {
        key: value
        for key, value in {"user_name": request.user_name, "user_reference": request.user_id}.items()
        if value
    }
    if overrides:
        config = config.model_copy(update=overrides)

    if request.mode == "generate":
        source: InterviewConfig | list[str] = config
    else:
        source = await _resolve_questions(request, state)

    call_id = registry.new_call_id()
    provider = state["provider_factory"]()
    controller = CallSessionController(
        provider,
        ReportedMicrophoneAccess(
            granted=request.microphone.granted,
            error_name=request.microphone.error_name,
            error_message=request.microphone.error_message,
        ),
        state["store"],
        state["config"].call_settings(),
        environment=request.environment,
        config=config,
        navigate=registry.navigation_callback(call_id),
    )
    registry.register(call_id, controller, provider)

    await controller.start(source)

    if controller.state is CallState.IDLE and controller.last_error is not None:
        error = controller.last_error
        stats["calls_failed"] += 1
        await registry.release(call_id, settle=False)
        raise CallServiceError(
            message=error.message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error.error_code,
        )

    registry.index_provider_call(call_id)
    stats["calls_started"] += 1
    logger.info("Call %s started in %s mode", call_id, request.mode)
    return CallResponse(
        ok=True,
        message="Call started",
        call_id=call_id,
        call=controller.snapshot(),
    )


@router.get("/calls/{call_id}", response_model=CallResponse)
async def get_call(call_id: str, state: AppStateDep) -> CallResponse:
    snapshot = state["registry"].snapshot(call_id)
    if snapshot is None:
        raise CallNotFoundError(call_id)
    return CallResponse(ok=True, call_id=call_id, call=snapshot)


@router.post("/calls/{call_id}/stop", response_model=CallResponse)
async def stop_call(call_id: str, state: AppStateDep) -> CallResponse:
    """End a call. Stopping an already released call returns its final snapshot."""
    registry = state["registry"]
    entry = registry.get(call_id)
    if entry is None:
        snapshot = registry.snapshot(call_id)
        if snapshot is None:
            raise CallNotFoundError(call_id)
        return CallResponse(ok=True, message="Call already finished", call_id=call_id, call=snapshot)

    await entry.controller.stop()
    state["stats"]["calls_stopped"] += 1
    return CallResponse(
        ok=True,
        message="Call finished",
        call_id=call_id,
        call=entry.controller.snapshot(),
    )


@router.post("/vapi/webhook")
async def vapi_webhook(payload: dict[str, Any], state: AppStateDep) -> dict[str, Any]:
    """
    Receive Vapi server messages.

    Body: {"message": {"type": "...", "call": {"id": "..."}, ...}}
    Messages for unknown calls are acknowledged and dropped.
    """
    stats = state["stats"]
    stats["webhook_messages"] += 1

    message = payload.get("message", payload)
    provider_call_id = extract_call_id(payload)
    entry = (
        state["registry"].find_by_provider_call(provider_call_id) if provider_call_id else None
    )
    if entry is None or not isinstance(entry.provider, VapiVoiceProvider) or not isinstance(message, dict):
        stats["webhook_unrouted"] += 1
        logger.debug("Unrouted webhook message for provider call %s", provider_call_id)
        return {"ok": True, "routed": False}

    event = await entry.provider.ingest(message)
    return {"ok": True, "routed": True, "event": event.kind if event else None}


@router.post("/api/save-interview")
async def save_interview(payload: dict[str, Any], state: AppStateDep) -> dict[str, Any]:
    """
    Save an interview setup.

    Raises:
        CallServiceError: 400 when role/type/level/userId is missing, 500 when the store fails.
    """
    stats = state["stats"]
    if not all(payload.get(key) for key in ("role", "type", "level", "userId")):
        raise CallServiceError(
            "Missing required fields: role, type, level, userId",
            status.HTTP_400_BAD_REQUEST,
            "MISSING_FIELDS",
        )

    request = SaveInterviewRequest(
        role=str(payload["role"]),
        type=str(payload["type"]),
        level=str(payload["level"]),
        amount=str(payload["amount"]) if payload.get("amount") else None,
        user_id=str(payload["userId"]),
        techstack=InterviewConfig(tech_stack=payload.get("techstack")).tech_stack,
    )
    result = await state["store"].save_interview(request)
    if not result.success:
        stats["save_failures"] += 1
        raise CallServiceError(
            result.error or "Failed to save interview",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "PERSISTENCE_FAILED",
        )

    stats["interviews_saved"] += 1
    return {
        "success": True,
        "data": result.data,
        "message": "Interview data saved successfully",
    }


@router.get("/api/vapi/generate")
async def generate_ping() -> dict[str, Any]:
    return {"success": True, "data": "Thank You"}


@router.post("/api/vapi/generate")
async def generate_questions(request: GenerateInterviewRequest, state: AppStateDep) -> dict[str, Any]:
    """
    Generate questions for an interview setup and store them as a finalized interview.

    Raises:
        CallServiceError: 502 when generation fails, 500 when the store fails.
    """
    try:
        record = await generate_interview(state["generator"], state["store"], request)
    except PersistenceError as exc:
        raise CallServiceError(exc.message, status.HTTP_500_INTERNAL_SERVER_ERROR, exc.error_code) from exc
    except Exception as exc:
        logger.error("Question generation failed: %s", exc, exc_info=True)
        raise CallServiceError(
            "Failed to generate interview questions",
            status.HTTP_502_BAD_GATEWAY,
            "GENERATION_FAILED",
        ) from exc

    state["stats"]["interviews_generated"] += 1
    return {
        "success": True,
        "data": "Interview created successfully",
        "interview": record.model_dump(by_alias=True),
    }


@router.get("/interviews")
async def list_interviews(state: AppStateDep, user_id: str | None = None) -> dict[str, Any]:
    try:
        interviews = await state["store"].list_interviews(user_id)
    except PersistenceError as exc:
        raise CallServiceError(exc.message, status.HTTP_502_BAD_GATEWAY, exc.error_code) from exc
    return {"ok": True, "interviews": interviews}


@router.get("/interviews/{interview_id}")
async def get_interview(interview_id: str, state: AppStateDep) -> dict[str, Any]:
    try:
        interview = await state["store"].get_interview(interview_id)
    except PersistenceError as exc:
        raise CallServiceError(exc.message, status.HTTP_502_BAD_GATEWAY, exc.error_code) from exc
    if interview is None:
        raise CallServiceError(
            "Interview not found.",
            status.HTTP_404_NOT_FOUND,
            "INTERVIEW_NOT_FOUND",
        )
    return {"ok": True, "interview": interview}


@router.post("/auth/sign-up", response_model=AuthResult)
async def sign_up(request: SignUpRequest, state: AppStateDep) -> AuthResult:
    result = await state["accounts"].sign_up(request.name, request.email, request.password)
    if not result.success:
        raise CallServiceError(
            result.error or "Sign up failed",
            status.HTTP_400_BAD_REQUEST,
            "SIGN_UP_FAILED",
        )
    return result


@router.post("/auth/sign-in", response_model=AuthResult)
async def sign_in(request: SignInRequest, state: AppStateDep) -> AuthResult:
    result = await state["accounts"].sign_in(request.email, request.password)
    if not result.success:
        raise CallServiceError(
            result.error or "Sign in failed",
            status.HTTP_401_UNAUTHORIZED,
            "SIGN_IN_FAILED",
        )
    return result


@router.get("/auth/me", response_model=AuthResult)
async def current_user(
    state: AppStateDep,
    authorization: Annotated[str | None, Header()] = None,
) -> AuthResult:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise CallServiceError(
            "Missing bearer token.",
            status.HTTP_401_UNAUTHORIZED,
            "NOT_AUTHENTICATED",
        )
    result = await state["accounts"].get_current_user(token.strip())
    if not result.success:
        raise CallServiceError(
            result.error or "No authenticated user found",
            status.HTTP_401_UNAUTHORIZED,
            "NOT_AUTHENTICATED",
        )
    return result


@router.get("/health", response_model=HealthResponse)
async def health(state: AppStateDep) -> HealthResponse:
    config = state["config"]
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        timestamp=_utc_now(),
        live_calls=state["registry"].live_count,
        provider_configured=bool(config.vapi_api_key),
        workflow_configured=bool(config.vapi_api_key and config.vapi_workflow_id),
        assistant_configured=bool(config.vapi_api_key and config.vapi_interviewer_assistant_id),
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(state: AppStateDep) -> StatsResponse:
    return StatsResponse(stats=dict(state["stats"]), calls=state["registry"].stats())


# =============================================================================
# FastAPI Application
# =============================================================================


def create_app(
    config: RuntimeConfig | None = None,
    *,
    store: SupabaseInterviewStore | None = None,
    generator: QuestionGenerator | None = None,
    accounts: AccountService | None = None,
    provider_factory: ProviderFactory | None = None,
) -> FastAPI:
    """
    Build the call service application.

    Collaborators not passed in are built from the runtime config when the
    application starts.
    """
    runtime_config = config or load_runtime_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
        """Initialize shared resources on startup and release live calls on shutdown."""
        logger.info(
            "Starting %s v%s on %s:%d",
            SERVICE_NAME,
            SERVICE_VERSION,
            runtime_config.service_host,
            runtime_config.service_port,
        )
        if not runtime_config.vapi_api_key:
            logger.warning("VAPI_API_KEY is not set; calls will fail to start.")

        interview_store = store or SupabaseInterviewStore.from_config(runtime_config)
        account_service = accounts or AccountService(interview_store.client)
        question_generator = generator or QuestionGenerator()

        def _vapi_provider() -> VoiceSessionProvider:
            return VapiVoiceProvider(
                api_key=runtime_config.vapi_api_key or "",
                base_url=runtime_config.vapi_base_url,
                timeout_seconds=runtime_config.provider_timeout_seconds,
            )

        registry = CallRegistry()
        state = {
            "config": runtime_config,
            "registry": registry,
            "store": interview_store,
            "generator": question_generator,
            "accounts": account_service,
            "provider_factory": provider_factory or _vapi_provider,
            "stats": get_initial_stats(),
        }
        yield state

        logger.info("Shutting down, releasing %d live calls", registry.live_count)
        await registry.close_all()

    app = FastAPI(
        title="Voice Interview Call Service",
        version=SERVICE_VERSION,
        description="Runs AI voice mock-interview calls and stores interview setups",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(runtime_config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        max_age=3600,
    )

    app.add_exception_handler(CallServiceError, call_service_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    app.include_router(router)
    return app


RUNTIME_CONFIG = load_runtime_config()
app = create_app(RUNTIME_CONFIG)


if __name__ == "__main__":
    logger.info("=" * 60)
    logger.info("%s v%s", SERVICE_NAME, SERVICE_VERSION)
    logger.info("")
    logger.info("Endpoints:")
    logger.info("  POST /calls                - Start a call")
    logger.info("  GET  /calls/{call_id}      - Call snapshot")
    logger.info("  POST /calls/{call_id}/stop - End a call")
    logger.info("  POST /vapi/webhook         - Provider server messages")
    logger.info("  POST /api/save-interview   - Save interview setup")
    logger.info("  POST /api/vapi/generate    - Generate interview questions")
    logger.info("  GET  /health               - Health check")
    logger.info("  GET  /stats                - Statistics")
    logger.info("=" * 60)

    uvicorn.run(
        app,
        host=RUNTIME_CONFIG.service_host,
        port=RUNTIME_CONFIG.service_port,
        log_level="info",
    )
