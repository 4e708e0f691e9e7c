from __future__ import annotations

import logging
from collections.abc import Generator

import pytest

from subtracker import events
from subtracker.context import reset_correlation_id, set_correlation_id
from subtracker.core.events import InProcessEventBus, InternalEvent


@pytest.fixture(autouse=True)
def clear_published() -> Generator[None, None, None]:
    events.published_events.clear()
    yield
    events.published_events.clear()


def test_namespace_wildcard_and_exact_handlers_both_receive_event() -> None:
    bus = InProcessEventBus()
    received: list[tuple[str, str]] = []

    bus.subscribe("subscription.*", lambda event: received.append(("wildcard", event.name)))
    bus.subscribe("subscription.expired", lambda event: received.append(("exact", event.name)))

    assert bus.publish("subscription.expired", {}) == 2
    assert bus.publish("subscription.created", {}) == 1
    assert bus.publish("system.started", {}) == 0
    assert received == [
        ("exact", "subscription.expired"),
        ("wildcard", "subscription.expired"),
        ("wildcard", "subscription.created"),
    ]


def test_handler_registered_twice_runs_once() -> None:
    bus = InProcessEventBus()
    seen: list[InternalEvent] = []

    def handler(event: InternalEvent) -> None:
        seen.append(event)

    bus.subscribe("subscription.*", handler)
    bus.subscribe("subscription.*", handler)
    bus.subscribe("subscription.cancelled", handler)
    bus.publish("subscription.cancelled", {"subscription_id": "sub-1"})

    assert len(seen) == 1
    assert seen[0].namespace == "subscription"
    assert seen[0].payload == {"subscription_id": "sub-1"}

    bus.unsubscribe("subscription.*", handler)
    bus.unsubscribe("subscription.cancelled", handler)
    assert bus.publish("subscription.cancelled", {}) == 0


def test_failing_handler_is_logged_and_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    bus = InProcessEventBus()
    delivered: list[str] = []

    def broken(event: InternalEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe("subscription.updated", broken)
    bus.subscribe("subscription.*", lambda event: delivered.append(event.name))

    caplog.set_level(logging.ERROR, logger="subtracker.events")
    assert bus.publish("subscription.updated", {}) == 1
    assert delivered == ["subscription.updated"]
    assert any(record.getMessage() == "event_handler_failed" for record in caplog.records)


def test_publish_stamps_correlation_id_and_records_envelope() -> None:
    token = set_correlation_id("evt-corr-1")
    try:
        stamped = events.publish({"event_type": "subscription.created", "subscription_id": "sub-1"})
    finally:
        reset_correlation_id(token)

    assert stamped["correlation_id"] == "evt-corr-1"
    assert stamped["published_at"]
    assert events.events_of_type("subscription.created") == [stamped]


def test_publish_requires_event_type() -> None:
    with pytest.raises(ValueError):
        events.publish({"subscription_id": "sub-1"})
    assert events.published_events == []
