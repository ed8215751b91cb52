"""
Provider Event Stream.

In-memory fan-out of provider events to the controllers (and any other
observers) listening on one voice session.

Uses asyncio queues so a provider callback, a webhook handler or a scripted
playback task can publish without knowing who is listening.

Example usage:
    stream = ProviderEventStream()
    queue = await stream.subscribe()
    await stream.publish(SessionStarted())
    event = await queue.get()
"""

from __future__ import annotations

import asyncio
import logging

from .models import ProviderEvent


__all__ = ["ProviderEventStream"]


logger = logging.getLogger(__name__)


class ProviderEventStream:
    """
    Publisher for provider events.

    Manages subscriber queues and broadcasts each event to all of them in
    publish order. There is no replay: a subscriber only sees events
    published after it subscribed.

    Example:
        stream = ProviderEventStream()

        # Subscribe to receive events
        queue = await stream.subscribe()

        # Publish an event
        await stream.publish(TranscriptFinal(speaker=Speaker.CALLER, text="Hi"))

        # Receive the event
        event = await queue.get()
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[ProviderEvent]] = []
        self._lock = asyncio.Lock()
        self._published = 0

    async def subscribe(self) -> asyncio.Queue[ProviderEvent]:
        """
        Subscribe to provider events.

        Caller is responsible for calling unsubscribe when done.

        Returns:
            Queue that will receive published events.
        """
        queue: asyncio.Queue[ProviderEvent] = asyncio.Queue()
        async with self._lock:
            self._subscribers.append(queue)
        logger.debug("Event subscriber added. Total: %d", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[ProviderEvent]) -> None:
        """
        Remove a subscriber.

        Args:
            queue: The queue to unsubscribe.
        """
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)
        logger.debug("Event subscriber removed. Total: %d", len(self._subscribers))

    async def publish(self, event: ProviderEvent) -> None:
        """
        Publish an event to all subscribers.

        Args:
            event: The provider event to publish.
        """
        async with self._lock:
            self._published += 1
            for queue in self._subscribers:
                queue.put_nowait(event)

        logger.debug("Published provider event: %s", event.kind)

    @property
    def subscriber_count(self) -> int:
        """Approximate number of active subscribers."""
        return len(self._subscribers)

    @property
    def published_count(self) -> int:
        """Number of events published since creation."""
        return self._published
