"""Voice session provider interface."""

from __future__ import annotations

from typing import Protocol

from interview_call.events import ProviderEventStream
from interview_call.models import ProviderCall, SessionDescriptor


class VoiceSessionProvider(Protocol):
    """
    Interface for hosted real-time voice platforms.

    Implementations publish every session notification on `events`; the call
    controller subscribes to it.
    """

    events: ProviderEventStream

    async def start(
        self,
        descriptor: SessionDescriptor,
        variable_values: dict[str, str],
    ) -> ProviderCall:
        """Open a voice session. Raises ProviderError on failure."""

    async def stop(self) -> None:
        """
        Request termination of the open session.

        Called before start() returns, it ends the session start() opens.
        Raises ProviderError on failure.
        """

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
