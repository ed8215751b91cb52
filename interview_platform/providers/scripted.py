"""
Scripted voice session provider.

Plays back a canned interview (greeting, each question with a canned answer,
closing) as provider events with realistic pacing. Used by the simulator CLI
and by tests in place of a hosted voice platform.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid

from interview_call.errors import ProviderError
from interview_call.events import ProviderEventStream
from interview_call.models import (
    ProviderCall,
    SessionDescriptor,
    SessionEnded,
    SessionKind,
    SessionStarted,
    Speaker,
    SpeechEnded,
    SpeechStarted,
    TranscriptFinal,
    TranscriptInterim,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Script
# =============================================================================

GREETING = "Hello {username}, thanks for joining. Let's get started with your mock interview."
CLOSING = "That's all the questions I have. Thank you for your time, and good luck!"

# Asked when the session runs the generation workflow and no list is bound.
WORKFLOW_QUESTIONS: tuple[str, ...] = (
    "Can you walk me through a project you're particularly proud of?",
    "How do you approach debugging a production issue under time pressure?",
    "Tell me about a time you disagreed with a colleague on a technical decision.",
)

CANNED_ANSWERS: tuple[str, ...] = (
    "Sure. At my last job I rebuilt our order pipeline around an event queue, which cut "
    "processing latency from minutes to a few seconds.",
    "I start from the dashboards to scope the impact, check recent deploys, and then narrow "
    "down to the slowest component before deciding between a rollback and a fix.",
    "We disagreed about splitting a service. I suggested we score both options against shared "
    "criteria, and the data pointed us to a smaller first step we both agreed on.",
    "I keep a short feedback loop: small pull requests, tests around the business logic, and "
    "reviews that focus on behaviour rather than style.",
)

WORDS_PER_SECOND = 2.5


def parse_question_binding(value: str) -> list[str]:
    """Split the newline-joined '- question' binding back into questions."""
    questions = []
    for line in value.splitlines():
        line = line.strip()
        if line.startswith("- "):
            line = line[2:]
        elif line.startswith("-"):
            line = line[1:]
        line = line.strip()
        if line:
            questions.append(line)
    return questions


def build_script(
    descriptor: SessionDescriptor,
    variable_values: dict[str, str],
    answers: tuple[str, ...] = CANNED_ANSWERS,
) -> list[tuple[Speaker, str]]:
    """Build the (speaker, text) lines played for one session."""
    if descriptor.kind is SessionKind.ASSISTANT:
        questions = parse_question_binding(variable_values.get("questions", ""))
    else:
        questions = list(WORKFLOW_QUESTIONS)

    username = variable_values.get("username") or "there"
    script: list[tuple[Speaker, str]] = [(Speaker.ASSISTANT, GREETING.format(username=username))]
    for index, question in enumerate(questions):
        script.append((Speaker.ASSISTANT, question))
        script.append((Speaker.CALLER, answers[index % len(answers)]))
    script.append((Speaker.ASSISTANT, CLOSING))
    return script


class ScriptedVoiceProvider:
    """Voice provider that plays a canned interview instead of a live call."""

    provider_type = "scripted"

    def __init__(
        self,
        turn_delay_seconds: float = 1.0,
        pace_by_length: bool = False,
        end_when_done: bool = True,
        fail_start: bool = False,
    ) -> None:
        """
        Args:
            turn_delay_seconds: Pause before each line. Zero plays back immediately.
            pace_by_length: Scale the pause by line length (~2.5 words per second).
            end_when_done: Emit SessionEnded after the closing line.
            fail_start: Make start() raise ProviderError.
        """
        self.turn_delay_seconds = turn_delay_seconds
        self.pace_by_length = pace_by_length
        self.end_when_done = end_when_done
        self.fail_start = fail_start
        self.events = ProviderEventStream()
        self.script: list[tuple[Speaker, str]] = []
        self.started_with: tuple[SessionDescriptor, dict[str, str]] | None = None
        self.stop_calls = 0
        self._call: ProviderCall | None = None
        self._playback: asyncio.Task[None] | None = None
        self._ended = False
        self._stop_requested = False

    async def start(
        self,
        descriptor: SessionDescriptor,
        variable_values: dict[str, str],
    ) -> ProviderCall:
        if self.fail_start:
            raise ProviderError("Failed to start call. Please try again.")
        if self._call is not None:
            raise ProviderError("A voice session is already open on this provider.")

        self.started_with = (descriptor, dict(variable_values))
        self.script = build_script(descriptor, variable_values)
        self._call = ProviderCall(call_id=f"scripted_{uuid.uuid4().hex[:12]}")

        await self.events.publish(SessionStarted())
        if self._stop_requested:
            logger.info("Scripted call %s was stopped before it opened", self._call.call_id)
            await self._end("stopped")
            return self._call
        self._playback = asyncio.create_task(self._play(), name="scripted-playback")
        logger.info(
            "Scripted call %s started with %d lines",
            self._call.call_id,
            len(self.script),
        )
        return self._call

    async def stop(self) -> None:
        self.stop_calls += 1
        if self._playback is not None and not self._playback.done():
            self._playback.cancel()
            try:
                await self._playback
            except asyncio.CancelledError:
                pass
        if self._call is None:
            self._stop_requested = True
            return
        await self._end("stopped")

    async def aclose(self) -> None:
        if self._playback is not None and not self._playback.done():
            self._playback.cancel()
            try:
                await self._playback
            except asyncio.CancelledError:
                pass

    async def wait_until_done(self) -> None:
        """Wait for the playback task to finish."""
        if self._playback is not None:
            await asyncio.gather(self._playback, return_exceptions=True)

    def _delay_for(self, text: str) -> float:
        if self.turn_delay_seconds <= 0:
            return 0.0
        if not self.pace_by_length:
            return self.turn_delay_seconds
        base = len(text.split()) / WORDS_PER_SECOND
        return max(self.turn_delay_seconds, base + random.uniform(-0.5, 0.5))

    async def _play(self) -> None:
        for speaker, text in self.script:
            await asyncio.sleep(self._delay_for(text))
            await self.events.publish(SpeechStarted(speaker=speaker))
            first_words = " ".join(text.split()[:4])
            await self.events.publish(TranscriptInterim(speaker=speaker, text=first_words))
            await self.events.publish(TranscriptFinal(speaker=speaker, text=text))
            await self.events.publish(SpeechEnded(speaker=speaker))

        if self.end_when_done:
            await self._end("assistant-ended-call")

    async def _end(self, reason: str) -> None:
        if self._ended:
            return
        self._ended = True
        await self.events.publish(SessionEnded(reason=reason))
        logger.info("Scripted call %s ended (%s)", self._call.call_id if self._call else "-", reason)
