"""Unit tests for the event bus and SSE formatting."""

import asyncio
import json

import pytest

from sentra.contexts.tracking.events import (
    EVENT_ADDED,
    EVENT_LABEL,
    EVENT_PING,
    EventBus,
    LabelUpdate,
    StreamMessage,
    format_sse,
)


@pytest.mark.unit
def test_publish_delivers_label_update_payload():
    bus = EventBus()
    received = []
    bus.on(EVENT_LABEL, received.append)

    delivered = bus.publish(EVENT_LABEL, LabelUpdate("a.pdf", "resumes/a.pdf", "elite", "Jane", ts=5))

    assert delivered == 1
    assert received == [
        {
            "filename": "a.pdf",
            "relativePath": "resumes/a.pdf",
            "label": "elite",
            "ts": 5,
            "candidateName": "Jane",
        }
    ]


@pytest.mark.unit
def test_candidate_name_omitted_when_unknown():
    payload = LabelUpdate("a.pdf", "a.pdf", "pending", ts=1).to_payload()
    assert "candidateName" not in payload


@pytest.mark.unit
def test_subscriber_failure_is_isolated():
    """One raising subscriber neither blocks the others nor the publisher."""
    bus = EventBus()
    received = []

    def broken(payload):
        raise RuntimeError("boom")

    bus.on(EVENT_ADDED, broken)
    bus.on(EVENT_ADDED, received.append)

    assert bus.publish(EVENT_ADDED, {"filename": "a.pdf"}) == 1
    assert received == [{"filename": "a.pdf"}]


@pytest.mark.unit
def test_unsubscribe_handle():
    bus = EventBus()
    received = []
    unsubscribe = bus.on(EVENT_LABEL, received.append)

    unsubscribe()
    unsubscribe()  # second call is a no-op

    assert bus.publish(EVENT_LABEL, {}) == 0
    assert bus.subscriber_count() == 0
    assert received == []


@pytest.mark.unit
def test_stream_yields_events_and_keepalives():
    bus = EventBus()

    async def scenario():
        messages = []
        stream = bus.stream([EVENT_LABEL], keepalive_interval=0.05)

        async def consume():
            async for message in stream:
                messages.append(message)
                if len(messages) == 2:
                    break

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0.08)
        bus.publish(EVENT_LABEL, {"filename": "a.pdf"})
        await asyncio.wait_for(consumer, timeout=2)
        await stream.aclose()
        return messages

    messages = asyncio.run(scenario())

    events = [m.event for m in messages]
    assert EVENT_PING in events
    assert messages[0].is_keepalive
    assert bus.subscriber_count() == 0


@pytest.mark.unit
def test_keepalive_continues_on_busy_stream():
    bus = EventBus()

    async def scenario():
        messages = []

        async def consume():
            async for message in bus.stream([EVENT_LABEL], keepalive_interval=0.1):
                messages.append(message)

        consumer = asyncio.create_task(consume())
        for i in range(25):
            await asyncio.sleep(0.02)
            bus.publish(EVENT_LABEL, {"filename": f"r{i}.pdf"})
        await asyncio.sleep(0.05)
        bus.close()
        await asyncio.wait_for(consumer, timeout=2)
        return messages

    messages = asyncio.run(scenario())

    assert sum(m.is_keepalive for m in messages) >= 2
    assert sum(not m.is_keepalive for m in messages) == 25


@pytest.mark.unit
def test_stream_greeting_then_close():
    bus = EventBus()

    async def scenario():
        messages = []
        async for message in bus.stream([EVENT_LABEL], greeting={"type": "connected", "watchDir": "x"}):
            messages.append(message)
            bus.close()
        return messages

    messages = asyncio.run(scenario())

    assert len(messages) == 1
    assert messages[0].event == "connected"
    assert messages[0].data["watchDir"] == "x"
    assert bus.subscriber_count() == 0


@pytest.mark.unit
def test_format_sse():
    message = StreamMessage(EVENT_LABEL, {"filename": "a.pdf", "label": "passed"})
    text = format_sse(message)

    assert text.startswith("event: label\ndata: ")
    assert text.endswith("\n\n")
    assert json.loads(text.splitlines()[1][len("data: "):]) == message.data
    assert format_sse(StreamMessage(EVENT_PING, {"ts": 7})) == ": ping 7\n\n"
