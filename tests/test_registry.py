"""
Call registry tests.
"""

from __future__ import annotations

import asyncio
import re

import pytest

from interview_call.controller import CallSessionController
from interview_call.models import CallState, SessionEnded
from interview_call.registry import CallRegistry
from tests.mock_data import QUESTIONS, FakeMicrophone, FakePersistence, FakeVoiceProvider, make_settings


def add_call(
    registry: CallRegistry,
    provider: FakeVoiceProvider | None = None,
    **settings: float,
) -> tuple[str, CallSessionController, FakeVoiceProvider]:
    provider = provider or FakeVoiceProvider()
    call_id = registry.new_call_id()
    controller = CallSessionController(
        provider,
        FakeMicrophone(),
        FakePersistence(),
        make_settings(**settings),
        navigate=registry.navigation_callback(call_id),
    )
    registry.register(call_id, controller, provider)
    return call_id, controller, provider


class TestCallIds:
    def test_format(self) -> None:
        assert re.fullmatch(r"call_\d{8}_\d{6}_[0-9a-f]{6}", CallRegistry.new_call_id())

    def test_duplicate_registration_rejected(self) -> None:
        registry = CallRegistry()
        call_id, controller, provider = add_call(registry)

        with pytest.raises(ValueError):
            registry.register(call_id, controller, provider)


class TestRouting:
    @pytest.mark.asyncio
    async def test_provider_call_index(self) -> None:
        registry = CallRegistry()
        call_id, controller, _ = add_call(registry, FakeVoiceProvider(call_id="vapi-7"))

        assert registry.index_provider_call(call_id) is None

        await controller.start(QUESTIONS)

        assert registry.index_provider_call(call_id) == "vapi-7"
        entry = registry.find_by_provider_call("vapi-7")
        assert entry is not None and entry.call_id == call_id
        assert registry.find_by_provider_call("unknown") is None

        await registry.close_all()

    def test_unknown_call(self) -> None:
        registry = CallRegistry()

        assert registry.get("missing") is None
        assert registry.snapshot("missing") is None
        assert registry.index_provider_call("missing") is None


class TestRelease:
    @pytest.mark.asyncio
    async def test_finished_call_released_after_navigation(self) -> None:
        registry = CallRegistry()
        call_id, controller, provider = add_call(registry, redirect_delay_seconds=0.0)
        await controller.start(QUESTIONS)
        registry.index_provider_call(call_id)

        await provider.events.publish(SessionEnded(reason="customer-ended-call"))
        for _ in range(50):
            if registry.get(call_id) is None and provider.closed:
                break
            await asyncio.sleep(0.01)

        assert registry.get(call_id) is None
        assert registry.find_by_provider_call("vapi-call-1") is None
        assert provider.closed is True
        snapshot = registry.snapshot(call_id)
        assert snapshot is not None and snapshot.state is CallState.FINISHED

    @pytest.mark.asyncio
    async def test_release_unknown_returns_none(self) -> None:
        assert await CallRegistry().release("missing") is None

    @pytest.mark.asyncio
    async def test_close_all_stops_live_calls(self) -> None:
        registry = CallRegistry()
        _, active, active_provider = add_call(registry, redirect_delay_seconds=10.0)
        _, idle, idle_provider = add_call(registry, redirect_delay_seconds=10.0)
        await active.start(QUESTIONS)

        await registry.close_all()

        assert registry.live_count == 0
        assert active.state is CallState.FINISHED
        assert idle.state is CallState.FINISHED
        assert active_provider.stop_calls == 1
        assert active_provider.closed and idle_provider.closed

    @pytest.mark.asyncio
    async def test_history_is_bounded(self) -> None:
        registry = CallRegistry(max_history=2)
        ids = [add_call(registry)[0] for _ in range(3)]

        for call_id in ids:
            await registry.release(call_id, settle=False)

        assert registry.snapshot(ids[0]) is None
        assert registry.snapshot(ids[2]) is not None


class TestStats:
    @pytest.mark.asyncio
    async def test_counts_by_state(self) -> None:
        registry = CallRegistry()
        _, controller, _ = add_call(registry)
        add_call(registry)
        await controller.start(QUESTIONS)

        stats = registry.stats()

        assert stats == {
            "registered_total": 2,
            "live": 2,
            "connecting": 0,
            "active": 1,
            "finished_retained": 0,
        }

        await registry.close_all()
