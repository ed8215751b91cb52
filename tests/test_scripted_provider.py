"""
Scripted provider tests, including full calls through the controller.
"""

from __future__ import annotations

import pytest

from interview_call.controller import CallSessionController
from interview_call.errors import ProviderError
from interview_call.models import (
    CallState,
    SessionDescriptor,
    SessionEnded,
    SessionKind,
    SessionStarted,
    Speaker,
    TranscriptFinal,
)
from interview_platform.providers.scripted import (
    CLOSING,
    WORKFLOW_QUESTIONS,
    ScriptedVoiceProvider,
    build_script,
    parse_question_binding,
)
from tests.mock_data import QUESTIONS, FakeMicrophone, FakePersistence, make_config, make_settings


class TestScript:
    def test_parse_question_binding(self) -> None:
        assert parse_question_binding("- One?\n-Two?\n\n  - Three?  ") == ["One?", "Two?", "Three?"]

    def test_assistant_script_uses_bound_questions(self) -> None:
        descriptor = SessionDescriptor(kind=SessionKind.ASSISTANT, identifier="asst")
        script = build_script(descriptor, {"questions": "- Q1\n- Q2"})

        assert [text for _, text in script[1:5:2]] == ["Q1", "Q2"]
        assert script[2][0] is Speaker.CALLER
        assert script[-1] == (Speaker.ASSISTANT, CLOSING)

    def test_workflow_script_greets_user(self) -> None:
        descriptor = SessionDescriptor(kind=SessionKind.WORKFLOW, identifier="wf")
        script = build_script(descriptor, {"username": "Ada"})

        assert "Ada" in script[0][1]
        assert len(script) == 2 + 2 * len(WORKFLOW_QUESTIONS)


class TestScriptedVoiceProvider:
    @pytest.mark.asyncio
    async def test_playback_ends_with_session_ended(self) -> None:
        provider = ScriptedVoiceProvider(turn_delay_seconds=0)
        queue = await provider.events.subscribe()

        await provider.start(SessionDescriptor(kind=SessionKind.ASSISTANT, identifier="a"), {"questions": "- Q1"})
        await provider.wait_until_done()

        events = []
        while not queue.empty():
            events.append(queue.get_nowait())

        assert isinstance(events[0], SessionStarted)
        assert isinstance(events[-1], SessionEnded)
        assert events[-1].reason == "assistant-ended-call"
        finals = [event.text for event in events if isinstance(event, TranscriptFinal)]
        assert finals[1] == "Q1"
        assert len(finals) == 4

    @pytest.mark.asyncio
    async def test_stop_cancels_playback_and_ends_once(self) -> None:
        provider = ScriptedVoiceProvider(turn_delay_seconds=10)
        queue = await provider.events.subscribe()
        await provider.start(SessionDescriptor(kind=SessionKind.WORKFLOW, identifier="wf"), {})

        await provider.stop()
        await provider.stop()

        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        ended = [event for event in events if isinstance(event, SessionEnded)]
        assert len(ended) == 1
        assert ended[0].reason == "stopped"
        assert provider.stop_calls == 2

    @pytest.mark.asyncio
    async def test_stop_before_start_ends_session_without_playback(self) -> None:
        provider = ScriptedVoiceProvider(turn_delay_seconds=0)
        queue = await provider.events.subscribe()

        await provider.stop()
        await provider.start(SessionDescriptor(kind=SessionKind.WORKFLOW, identifier="wf"), {})
        await provider.wait_until_done()

        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        assert isinstance(events[0], SessionStarted)
        assert isinstance(events[1], SessionEnded)
        assert events[1].reason == "stopped"
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_fail_start(self) -> None:
        provider = ScriptedVoiceProvider(fail_start=True)

        with pytest.raises(ProviderError):
            await provider.start(SessionDescriptor(kind=SessionKind.WORKFLOW, identifier="wf"), {})


class TestScriptedCall:
    """Complete calls driven by the scripted provider."""

    @pytest.mark.asyncio
    async def test_generation_call_saves_once(self) -> None:
        provider = ScriptedVoiceProvider(turn_delay_seconds=0)
        persistence = FakePersistence()
        navigations: list[bool] = []
        controller = CallSessionController(
            provider,
            FakeMicrophone(),
            persistence,
            make_settings(),
            navigate=lambda: navigations.append(True),
        )

        async with controller:
            await controller.start(make_config())
            await provider.wait_until_done()
            await controller.wait_until_settled()

            assert controller.state is CallState.FINISHED
            assert len(controller.transcript) == 2 + 2 * len(WORKFLOW_QUESTIONS)
            assert controller.transcript[-1].text == CLOSING
            assert len(persistence.requests) == 1
            assert navigations == [True]

        await provider.aclose()

    @pytest.mark.asyncio
    async def test_fixed_call_transcript_follows_questions(self) -> None:
        provider = ScriptedVoiceProvider(turn_delay_seconds=0)
        controller = CallSessionController(provider, FakeMicrophone(), None, make_settings())

        async with controller:
            await controller.start(QUESTIONS)
            await provider.wait_until_done()
            await controller.wait_until_settled()

            asked = [
                entry.text
                for entry in controller.transcript[1:-1]
                if entry.speaker is Speaker.ASSISTANT
            ]
            assert asked == QUESTIONS
            assert controller.state is CallState.FINISHED

        await provider.aclose()

    @pytest.mark.asyncio
    async def test_user_stop_ends_playback(self) -> None:
        provider = ScriptedVoiceProvider(turn_delay_seconds=10)
        persistence = FakePersistence()
        controller = CallSessionController(provider, FakeMicrophone(), persistence, make_settings())

        async with controller:
            await controller.start(make_config())
            await controller.stop()
            await controller.wait_until_settled()

            assert controller.state is CallState.FINISHED
            assert provider.stop_calls == 1
            assert persistence.requests == []

        await provider.aclose()
