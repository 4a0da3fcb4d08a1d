"""Event Bus - topic-scoped pub/sub for stream events.

The host runtime publishes each request's events on its own topic
("<prefix>-<request_id>"); the session controller subscribes to that topic
for the lifetime of one request.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

# Callbacks may be plain functions or coroutine functions
EventCallback = Callable[[dict[str, Any]], Awaitable[None] | None]


class Subscription:
    """Handle for one callback registered on one topic.

    Releasing is idempotent. Once released, the callback receives nothing.
    """

    def __init__(self, bus: EventBus, topic: str, callback: EventCallback) -> None:
        self.topic = topic
        self._bus = bus
        self._callback = callback
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Stop delivery to this subscription."""
        if self._released:
            return
        self._released = True
        self._bus._remove(self.topic, self._callback)


class EventBus:
    """Simple event bus keyed by topic name.

    Subscriber lists are copied under an asyncio.Lock before delivery so
    callbacks may subscribe or release while an event is being published.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventCallback]] = {}
        self._lock: asyncio.Lock | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the lock (lazy init for event loop safety)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        """Publish a payload to every subscriber of a topic.

        Args:
            topic: Topic name
            payload: JSON-compatible event payload
        """
        async with self._get_lock():
            subscribers = list(self._subscriptions.get(topic, []))

        if not subscribers:
            logger.debug(f"No subscribers for {topic}, dropping {payload.get('type')} event")

        for callback in subscribers:
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Error in subscriber for {topic}")

    async def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        """Subscribe to a topic.

        Args:
            topic: Topic name
            callback: Called with each event payload published on the topic

        Returns:
            Subscription whose release() stops delivery
        """
        async with self._get_lock():
            self._subscriptions.setdefault(topic, []).append(callback)
        return Subscription(self, topic, callback)

    def _remove(self, topic: str, callback: EventCallback) -> None:
        # Synchronous removal is safe: publish() iterates over a copy
        callbacks = self._subscriptions.get(topic)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)
            if not callbacks:
                del self._subscriptions[topic]

    def subscriber_count(self, topic: str) -> int:
        """Number of live subscriptions on a topic."""
        return len(self._subscriptions.get(topic, []))

    async def stream(self, topic: str) -> AsyncIterator[dict[str, Any]]:
        """Create an async iterator that yields a topic's events.

        Usage:
            async for event in bus.stream("claude-code-stream-<id>"):
                print(event["type"])
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

        async def on_event(payload: dict[str, Any]) -> None:
            await queue.put(payload)

        subscription = await self.subscribe(topic, on_event)

        try:
            while True:
                yield await queue.get()
        finally:
            subscription.release()

    def reset(self) -> None:
        """Drop all subscriptions (for testing)."""
        self._subscriptions = {}
        self._lock = None
