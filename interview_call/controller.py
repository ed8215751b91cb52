"""
Call Session Controller.

Owns one voice interview call: a small state machine
(idle -> connecting -> active -> finished) that relays provider events into
observable state and saves the interview configuration once the provider
reports the call is over.

Concurrency:
    All work happens on a single asyncio event loop. Provider events are
    consumed by one dispatcher task per controller, so no two event handlers
    ever run at the same time. start() may suspend on the microphone request
    and on the provider start call; event handlers may run in between.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from typing import TYPE_CHECKING, Any, Optional, Union

from .capabilities import MicrophoneAccess, check_audio_environment
from .errors import CallError, CallStateError, ConfigurationError, ProviderError
from .models import (
    AudioEnvironment,
    CallSnapshot,
    CallState,
    InterviewConfig,
    ProviderCall,
    ProviderEvent,
    ProviderFault,
    SessionDescriptor,
    SessionEnded,
    SessionKind,
    SessionStarted,
    SpeechEnded,
    SpeechStarted,
    TranscriptEntry,
    TranscriptFinal,
    TranscriptInterim,
)
from .settings import CallSettings

if TYPE_CHECKING:
    from interview_platform.persistence import PersistenceService
    from interview_platform.providers.base import VoiceSessionProvider


__all__ = ["CallSessionController", "ALLOWED_TRANSITIONS"]


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.IDLE: frozenset({CallState.CONNECTING, CallState.FINISHED}),
    CallState.CONNECTING: frozenset({CallState.ACTIVE, CallState.IDLE, CallState.FINISHED}),
    CallState.ACTIVE: frozenset({CallState.FINISHED}),
    CallState.FINISHED: frozenset(),
}

_LIVE_STATES = frozenset({CallState.CONNECTING, CallState.ACTIVE})


class CallSessionController:
    """
    Drives one voice interview call from idle to finished.

    Two ways to start:
        - Generation mode: pass an InterviewConfig. The provider runs the
          question-generation workflow and the config is saved when the call ends.
        - Fixed mode: pass a list of questions. The provider runs the
          interviewer assistant with the questions bound as one variable.

    Failures while starting never raise. They return the controller to idle
    and set `error_note` for the host to show.

    Example:
        >>> controller = CallSessionController(
        ...     provider, microphone, store, settings,
        ...     environment=AudioEnvironment(),
        ...     navigate=lambda: print("go home"),
        ... )
        >>> async with controller:
        ...     await controller.start(["Tell me about yourself."])
        ...     ...
        ...     await controller.stop()
    """

    def __init__(
        self,
        provider: "VoiceSessionProvider",
        microphone: MicrophoneAccess,
        persistence: Optional["PersistenceService"],
        settings: CallSettings,
        *,
        environment: Optional[AudioEnvironment] = None,
        config: Optional[InterviewConfig] = None,
        navigate: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Initialize an idle controller.

        Args:
            provider: Voice session provider; its event stream feeds the dispatcher.
            microphone: Collaborator that requests microphone permission.
            persistence: Save boundary used once at call end. None disables saving.
            settings: Provider identifiers and redirect delay.
            environment: Host audio capability report. Defaults to a modern browser.
            config: Interview configuration saved at call end (fixed mode).
            navigate: Host callback invoked once after the call finishes.
        """
        self._provider = provider
        self._microphone = microphone
        self._persistence = persistence
        self._settings = settings
        self._environment = environment or AudioEnvironment()
        self._config = config
        self._navigate = navigate

        self._state = CallState.IDLE
        self._transcript: list[TranscriptEntry] = []
        self._error_note: Optional[str] = None
        self._last_error: Optional[CallError] = None
        self._is_speaking = False
        self._provider_call: Optional[ProviderCall] = None
        self._redirect_requested = False

        self._starting = False
        self._stop_sent = False
        self._persist_started = False

        self._queue: Optional[asyncio.Queue[ProviderEvent]] = None
        self._dispatcher: Optional[asyncio.Task[None]] = None
        self._redirect_task: Optional[asyncio.Task[None]] = None
        self._background: set[asyncio.Task[Any]] = set()

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        """Finalized transcript lines in arrival order (copy)."""
        return tuple(self._transcript)

    @property
    def error_note(self) -> Optional[str]:
        return self._error_note

    @property
    def last_error(self) -> Optional[CallError]:
        return self._last_error

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    @property
    def last_message(self) -> Optional[str]:
        """Text of the most recent transcript line, if any."""
        return self._transcript[-1].text if self._transcript else None

    @property
    def provider_call(self) -> Optional[ProviderCall]:
        return self._provider_call

    @property
    def redirect_requested(self) -> bool:
        return self._redirect_requested

    @property
    def config(self) -> Optional[InterviewConfig]:
        return self._config

    def snapshot(self) -> CallSnapshot:
        """Build a read-only view of the controller."""
        return CallSnapshot(
            state=self._state,
            error_note=self._error_note,
            is_speaking=self._is_speaking,
            last_message=self.last_message,
            transcript=list(self._transcript),
            provider_call_id=self._provider_call.call_id if self._provider_call else None,
            redirect_requested=self._redirect_requested,
        )

    def dismiss_error(self) -> None:
        """Clear the error note after the host has shown it."""
        self._error_note = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        """Subscribe to the provider event stream and start the dispatcher."""
        if self._queue is not None:
            return
        self._queue = await self._provider.events.subscribe()
        self._dispatcher = asyncio.create_task(
            self._run_dispatcher(self._queue),
            name="call-dispatcher",
        )
        logger.debug("Call controller opened")

    async def close(self) -> None:
        """Stop consuming events and cancel a pending redirect."""
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

        if self._queue is not None:
            await self._provider.events.unsubscribe(self._queue)
            self._queue = None

        redirect = self._redirect_task
        if redirect is not None and not redirect.done() and redirect is not asyncio.current_task():
            redirect.cancel()
        logger.debug("Call controller closed in state %s", self._state.value)

    async def __aenter__(self) -> "CallSessionController":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def wait_until_settled(self) -> None:
        """Wait until queued events are handled and background tasks are done."""
        if self._queue is not None:
            await self._queue.join()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # =========================================================================
    # Commands
    # =========================================================================

    async def start(self, source: Union[InterviewConfig, Sequence[str]]) -> None:
        """
        Start the call in generation mode (InterviewConfig) or fixed mode (questions).

        Rejected as a no-op unless the controller is idle with no start in flight.
        Errors are reported through `error_note`, never raised.

        Args:
            source: Interview configuration or the precomputed question list.
        """
        if self._state is not CallState.IDLE or self._starting:
            logger.warning(
                "Ignoring start request: state=%s starting=%s",
                self._state.value,
                self._starting,
            )
            return

        self._starting = True
        try:
            await self.open()
            check_audio_environment(self._environment)
            await self._microphone.request_permission()

            if self._state is not CallState.IDLE:
                logger.info("Call left idle during microphone request, abandoning start")
                return
            self._transition(CallState.CONNECTING)

            descriptor, bindings = self._build_session_request(source)
            call = await self._start_provider(descriptor, bindings)
            self._provider_call = call
            logger.info(
                "Voice session %s started with %s %s",
                call.call_id,
                descriptor.kind.value,
                descriptor.identifier,
            )

            if self._state is CallState.CONNECTING:
                self._transition(CallState.ACTIVE)
            elif self._state is CallState.FINISHED:
                logger.info("Call %s was stopped while the session was opening", call.call_id)
        except CallStateError:
            raise
        except CallError as exc:
            await self._fail(exc)
        finally:
            self._starting = False

    async def stop(self) -> None:
        """
        End the call from any state.

        Provider termination is requested exactly once per call, immediately,
        even while start() is still waiting on the microphone or the provider.
        A provider that receives stop() before its session opens ends that
        session as soon as it exists. Provider errors are logged, not raised.
        """
        if self._state is not CallState.FINISHED:
            self._transition(CallState.FINISHED)

        if self._stop_sent:
            return
        await self._send_stop()

    # =========================================================================
    # Event intake
    # =========================================================================

    def dispatch(self, event: ProviderEvent) -> None:
        """
        Apply one provider event.

        Events only act while connecting or active; otherwise they are dropped.
        """
        if self._state not in _LIVE_STATES:
            logger.debug("Dropping %s event in state %s", event.kind, self._state.value)
            return

        if isinstance(event, SessionStarted):
            if self._state is CallState.CONNECTING:
                self._transition(CallState.ACTIVE)
        elif isinstance(event, SessionEnded):
            logger.info("Provider ended the call (reason=%s)", event.reason)
            self._transition(CallState.FINISHED)
            self._spawn(self._persist(), name="call-persist")
        elif isinstance(event, TranscriptFinal):
            self._transcript.append(TranscriptEntry(speaker=event.speaker, text=event.text))
            logger.debug(
                "Transcript line %d from %s (len=%d)",
                len(self._transcript),
                event.speaker.value,
                len(event.text),
            )
        elif isinstance(event, TranscriptInterim):
            pass
        elif isinstance(event, SpeechStarted):
            self._is_speaking = True
        elif isinstance(event, SpeechEnded):
            self._is_speaking = False
        elif isinstance(event, ProviderFault):
            logger.error("Voice provider error (code=%s): %s", event.code, event.message)

    async def _run_dispatcher(self, queue: asyncio.Queue[ProviderEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                self.dispatch(event)
            except Exception:
                logger.exception("Failed to handle provider event %s", event.kind)
            finally:
                queue.task_done()

    # =========================================================================
    # Internals
    # =========================================================================

    def _transition(self, target: CallState) -> None:
        current = self._state
        if target not in ALLOWED_TRANSITIONS[current]:
            raise CallStateError(
                f"Cannot move call from {current.value} to {target.value}"
            )
        self._state = target
        if current is CallState.IDLE:
            self._error_note = None
        logger.info("Call state %s -> %s", current.value, target.value)

        if target is CallState.FINISHED:
            self._is_speaking = False
            self._schedule_redirect()

    def _build_session_request(
        self,
        source: Union[InterviewConfig, Sequence[str]],
    ) -> tuple[SessionDescriptor, dict[str, str]]:
        if not self._settings.web_token:
            raise ConfigurationError(
                "Voice provider configuration is missing. Please check your environment variables."
            )

        if isinstance(source, InterviewConfig):
            if not self._settings.workflow_id:
                raise ConfigurationError(
                    "Voice workflow ID is missing. Please check your environment variables."
                )
            self._config = source
            descriptor = SessionDescriptor(
                kind=SessionKind.WORKFLOW,
                identifier=self._settings.workflow_id,
            )
            bindings = {
                "username": source.user_name or "User",
                "userId": source.user_reference or "",
            }
            return descriptor, bindings

        if not self._settings.interviewer_assistant_id:
            raise ConfigurationError(
                "Interviewer assistant ID is missing. Please check your environment variables."
            )
        items = [source] if isinstance(source, str) else list(source)
        questions = [q.strip() for q in items if q and q.strip()]
        if not questions:
            raise ConfigurationError(
                "No interview questions were provided. Generate questions before starting the interview."
            )
        descriptor = SessionDescriptor(
            kind=SessionKind.ASSISTANT,
            identifier=self._settings.interviewer_assistant_id,
        )
        formatted = "\n".join(f"- {question}" for question in questions)
        return descriptor, {"questions": formatted}

    async def _start_provider(
        self,
        descriptor: SessionDescriptor,
        bindings: dict[str, str],
    ) -> ProviderCall:
        try:
            return await self._provider.start(descriptor, bindings)
        except ProviderError:
            raise
        except Exception as exc:
            logger.exception("Voice provider raised while starting the call")
            raise ProviderError("Failed to start call. Please try again.") from exc

    async def _send_stop(self) -> None:
        self._stop_sent = True
        try:
            await self._provider.stop()
        except ProviderError as exc:
            logger.error("Failed to stop voice session: %s", exc.message)

    async def _fail(self, error: CallError) -> None:
        self._last_error = error
        if self._state is CallState.FINISHED:
            logger.info("Start failed after call finished (%s): %s", error.error_code, error.message)
            return
        if self._state is CallState.ACTIVE:
            # Provider reported the session live before its start call failed.
            logger.error(
                "Call start failed after session went live (%s): %s",
                error.error_code,
                error.message,
            )
            await self.stop()
            return
        if self._state is CallState.CONNECTING:
            self._transition(CallState.IDLE)
        self._error_note = error.message
        logger.warning("Call start failed (%s): %s", error.error_code, error.message)

    async def _persist(self) -> None:
        if self._persist_started:
            return
        self._persist_started = True

        request = self._config.to_save_request() if self._config is not None else None
        if request is None or self._persistence is None:
            logger.info("Missing interview data, skipping save")
            return

        try:
            result = await self._persistence.save_interview(request)
        except Exception:  # noqa: BLE001
            logger.exception("Error saving interview for user %s", request.user_id)
            return

        if result.success:
            logger.info("Interview saved: role=%s level=%s", request.role, request.level)
        else:
            logger.error("Failed to save interview: %s", result.error)

    def _schedule_redirect(self) -> None:
        if self._redirect_task is not None:
            return
        self._redirect_task = self._spawn(self._redirect_after_delay(), name="call-redirect")

    async def _redirect_after_delay(self) -> None:
        await asyncio.sleep(self._settings.redirect_delay_seconds)
        self._redirect_requested = True
        logger.info("Call finished, signalling navigation")
        if self._navigate is None:
            return
        try:
            self._navigate()
        except Exception:
            logger.exception("Navigation callback failed")

    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
