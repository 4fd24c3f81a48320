"""
In-process event bus for pipeline state transitions.

Subscribers register a callback per event name and get back an unsubscribe
handle. Delivery is synchronous and best-effort: a subscriber that raises is
logged and skipped, never affecting other subscribers or the publisher.

Long-lived consumers (e.g. Server-Sent Events connections) use ``stream()``,
which yields domain events interleaved with periodic keep-alive pings so
half-open connections are noticed.

Event names:
    added  - a new file entered the pipeline
    label  - a manifest label changed
    ready  - the directory watcher finished its initial scan
"""

import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

from sentra.contexts.tracking.logger import _log_debug, _log_warning
from sentra.utils.timestamp import now_ms

EVENT_ADDED = "added"
EVENT_LABEL = "label"
EVENT_READY = "ready"
EVENT_PING = "ping"

DEFAULT_KEEPALIVE_SECONDS = 25.0
STREAM_BUFFER_SIZE = 1000

Callback = Callable[[Any], None]


@dataclass(frozen=True)
class LabelUpdate:
    """Payload for ``added`` and ``label`` events."""

    filename: str
    rel_path: str
    label: Optional[str]
    candidate_name: Optional[str] = None
    ts: int = field(default_factory=now_ms)

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "filename": self.filename,
            "relativePath": self.rel_path,
            "label": self.label,
            "ts": self.ts,
        }
        if self.candidate_name:
            payload["candidateName"] = self.candidate_name
        return payload


@dataclass(frozen=True)
class StreamMessage:
    """One item yielded by EventBus.stream()."""

    event: str
    data: Any

    @property
    def is_keepalive(self) -> bool:
        return self.event == EVENT_PING


_CLOSED = object()


class EventBus:
    """Typed publish/subscribe with explicit unsubscribe handles."""

    def __init__(self):
        self._subscribers: Dict[str, List[Callback]] = defaultdict(list)
        self._stream_queues: List[asyncio.Queue] = []
        self._closed = False

    def on(self, event: str, callback: Callback) -> Callable[[], None]:
        """
        Subscribe to an event.

        Returns:
            Zero-argument function that removes the subscription (idempotent)
        """
        self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, event: str, payload: Any = None) -> int:
        """
        Deliver payload to every subscriber of event.

        Returns:
            Number of subscribers that received the event without raising
        """
        if isinstance(payload, LabelUpdate):
            payload = payload.to_payload()

        delivered = 0
        # Copy: callbacks may unsubscribe while we iterate
        for callback in list(self._subscribers.get(event, ())):
            try:
                callback(payload)
                delivered += 1
            except Exception as e:
                _log_warning(f"Subscriber for '{event}' failed: {type(e).__name__}: {e}")
        return delivered

    def subscriber_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._subscribers.get(event, ()))
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    async def stream(
        self,
        events: Iterable[str],
        keepalive_interval: float = DEFAULT_KEEPALIVE_SECONDS,
        greeting: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[StreamMessage]:
        """
        Yield events as they are published, plus keep-alive pings.

        The subscription is removed when the consumer stops iterating or the
        bus is closed.

        Args:
            events: Event names to forward
            keepalive_interval: Seconds between pings, whether or not events arrive
            greeting: Optional first message ({"type": ..., **fields})
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=STREAM_BUFFER_SIZE)

        def enqueue(item) -> None:
            try:
                queue.put_nowait(item)
            except asyncio.QueueFull:
                _log_warning("Event stream buffer full, dropping event")

        def forward(event_name: str) -> Callback:
            def callback(data: Any) -> None:
                # Publishers may live on another thread
                loop.call_soon_threadsafe(enqueue, StreamMessage(event_name, data))

            return callback

        unsubscribers = [self.on(name, forward(name)) for name in events]
        self._stream_queues.append(queue)
        _log_debug(f"Stream opened ({len(self._stream_queues)} active)")

        try:
            if greeting:
                greeting = dict(greeting)
                event_name = greeting.pop("type", "connected")
                yield StreamMessage(event_name, {**greeting, "ts": now_ms()})

            next_ping = loop.time() + keepalive_interval
            while not self._closed:
                timeout = max(0.0, next_ping - loop.time())
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    # Fixed cadence: busy streams still get pinged
                    next_ping = loop.time() + keepalive_interval
                    yield StreamMessage(EVENT_PING, {"ts": now_ms()})
                    continue
                if item is _CLOSED:
                    break
                yield item
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
            if queue in self._stream_queues:
                self._stream_queues.remove(queue)
            _log_debug(f"Stream closed ({len(self._stream_queues)} active)")

    def close(self) -> None:
        """Drop all subscribers and end every open stream."""
        self._closed = True
        self._subscribers.clear()
        for queue in list(self._stream_queues):
            try:
                queue.put_nowait(_CLOSED)
            except asyncio.QueueFull:
                pass


def format_sse(message: StreamMessage) -> str:
    """Render a stream message in Server-Sent Events wire format."""
    if message.is_keepalive:
        return f": ping {message.data['ts']}\n\n"
    return f"event: {message.event}\ndata: {json.dumps(message.data)}\n\n"
