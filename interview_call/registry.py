"""
Call Registry.

Keeps the live call controllers of a service process, indexed by a local call
id and by the provider's call id so provider webhooks can be routed back to
the right controller.

Thread Safety:
    This class is NOT thread-safe. Use it from the event loop that owns the
    controllers.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from .controller import CallSessionController
from .models import CallSnapshot, CallState

if TYPE_CHECKING:
    from interview_platform.providers.base import VoiceSessionProvider


__all__ = ["CallEntry", "CallRegistry"]


logger = logging.getLogger(__name__)


def _format_utc_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO 8601 UTC string with 'Z' suffix."""
    return dt.isoformat().replace("+00:00", "Z")


@dataclass
class CallEntry:
    """A live call: its controller and the provider it owns."""

    call_id: str
    controller: CallSessionController
    provider: "VoiceSessionProvider"
    created_at: str = field(default_factory=lambda: _format_utc_timestamp(datetime.now(timezone.utc)))


class CallRegistry:
    """
    Registry of live calls and a bounded history of finished ones.

    Responsibilities:
        - Allocate local call ids
        - Route provider call ids to live calls
        - Release controller and provider once the host is told to navigate away
        - Retain snapshots of released calls

    Example:
        >>> registry = CallRegistry()
        >>> call_id = registry.new_call_id()
        >>> controller = CallSessionController(..., navigate=registry.navigation_callback(call_id))
        >>> registry.register(call_id, controller, provider)
        >>> await controller.start(config)
        >>> registry.index_provider_call(call_id)
    """

    def __init__(self, max_history: int = 100) -> None:
        self._calls: dict[str, CallEntry] = {}
        self._by_provider_call: dict[str, str] = {}
        self._history: deque[tuple[str, CallSnapshot]] = deque(maxlen=max_history)
        self._releases: set[asyncio.Task[None]] = set()
        self._total_registered = 0

    @staticmethod
    def new_call_id() -> str:
        """
        Allocate a local call id.

        Returns:
            Id of the form 'call_20260131_103000_a1b2c3'.
        """
        timestamp = datetime.now(timezone.utc)
        return f"call_{timestamp.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"

    def register(
        self,
        call_id: str,
        controller: CallSessionController,
        provider: "VoiceSessionProvider",
    ) -> CallEntry:
        """
        Track a controller under a local call id.

        Raises:
            ValueError: If the call id is already registered.
        """
        if call_id in self._calls:
            raise ValueError(f"Call '{call_id}' is already registered")
        entry = CallEntry(call_id=call_id, controller=controller, provider=provider)
        self._calls[call_id] = entry
        self._total_registered += 1
        logger.info("Registered call %s (live: %d)", call_id, len(self._calls))
        return entry

    def index_provider_call(self, call_id: str) -> Optional[str]:
        """
        Index a live call by the provider call id its controller obtained.

        Returns:
            The provider call id, or None if the call has none (yet).
        """
        entry = self._calls.get(call_id)
        if entry is None or entry.controller.provider_call is None:
            return None
        provider_call_id = entry.controller.provider_call.call_id
        self._by_provider_call[provider_call_id] = call_id
        logger.debug("Call %s mapped to provider call %s", call_id, provider_call_id)
        return provider_call_id

    def get(self, call_id: str) -> Optional[CallEntry]:
        return self._calls.get(call_id)

    def find_by_provider_call(self, provider_call_id: str) -> Optional[CallEntry]:
        call_id = self._by_provider_call.get(provider_call_id)
        return self._calls.get(call_id) if call_id else None

    def snapshot(self, call_id: str) -> Optional[CallSnapshot]:
        """Snapshot of a live call, or of a released call still in history."""
        entry = self._calls.get(call_id)
        if entry is not None:
            return entry.controller.snapshot()
        for past_id, snapshot in reversed(self._history):
            if past_id == call_id:
                return snapshot
        return None

    def navigation_callback(self, call_id: str) -> Callable[[], None]:
        """
        Build the navigate callback for a controller.

        The callback schedules the release of the call; the controller invokes
        it once after the call finished.
        """

        def _navigate() -> None:
            logger.info("Call %s asked host to navigate away", call_id)
            task = asyncio.create_task(self.release(call_id), name=f"release-{call_id}")
            self._releases.add(task)
            task.add_done_callback(self._releases.discard)

        return _navigate

    async def release(self, call_id: str, *, settle: bool = True) -> Optional[CallSnapshot]:
        """
        Close a call's controller and provider and move it to history.

        Args:
            call_id: Local call id.
            settle: Wait for pending events and the save before closing.

        Returns:
            Final snapshot, or None if the call was not live.
        """
        entry = self._calls.pop(call_id, None)
        if entry is None:
            return None
        if entry.controller.provider_call is not None:
            self._by_provider_call.pop(entry.controller.provider_call.call_id, None)

        if settle:
            await entry.controller.wait_until_settled()
        await entry.controller.close()
        await entry.provider.aclose()

        snapshot = entry.controller.snapshot()
        self._history.append((call_id, snapshot))
        logger.info("Released call %s in state %s", call_id, snapshot.state.value)
        return snapshot

    async def close_all(self) -> None:
        """Stop and release every live call (service shutdown)."""
        for call_id in list(self._calls):
            entry = self._calls[call_id]
            if entry.controller.state is not CallState.FINISHED:
                await entry.controller.stop()
            await self.release(call_id, settle=False)
        if self._releases:
            await asyncio.gather(*list(self._releases), return_exceptions=True)

    @property
    def live_count(self) -> int:
        return len(self._calls)

    def stats(self) -> dict[str, int]:
        """Counts for the service statistics endpoint."""
        states = [entry.controller.state for entry in self._calls.values()]
        return {
            "registered_total": self._total_registered,
            "live": len(self._calls),
            "connecting": states.count(CallState.CONNECTING),
            "active": states.count(CallState.ACTIVE),
            "finished_retained": len(self._history),
        }
