from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from subtracker.context import get_correlation_id
from subtracker.core.events import event_bus

published_events: list[dict[str, Any]] = []


def publish(envelope: dict[str, Any]) -> dict[str, Any]:
    event_type = envelope.get("event_type")
    if not isinstance(event_type, str) or not event_type:
        raise ValueError("event envelope requires an event_type")

    stamped = {
        **envelope,
        "correlation_id": envelope.get("correlation_id") or get_correlation_id(),
        "published_at": datetime.now(timezone.utc).isoformat(),
    }
    published_events.append(stamped)
    event_bus.publish(event_type, stamped)
    return stamped


def events_of_type(event_type: str) -> list[dict[str, Any]]:
    return [item for item in published_events if item["event_type"] == event_type]
