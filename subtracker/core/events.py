from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


logger = logging.getLogger("subtracker.events")

WILDCARD_SUFFIX = ".*"


@dataclass(frozen=True)
class InternalEvent:
    name: str
    payload: dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def namespace(self) -> str:
        return self.name.split(".", 1)[0]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out to handlers keyed by exact name or by `<namespace>.*`."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        if handler not in self._handlers[pattern]:
            self._handlers[pattern].append(handler)

    def unsubscribe(self, pattern: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(pattern, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_name: str) -> list[EventHandler]:
        namespace = event_name.split(".", 1)[0]
        matched = list(self._handlers.get(event_name, []))
        for handler in self._handlers.get(namespace + WILDCARD_SUFFIX, []):
            if handler not in matched:
                matched.append(handler)
        return matched

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = InternalEvent(name=event_name, payload=payload)
        delivered = 0
        for handler in self.handlers_for(event_name):
            try:
                handler(event)
            except Exception:
                logger.exception("event_handler_failed", extra={"event_name": event_name})
                continue
            delivered += 1
        return delivered


event_bus = InProcessEventBus()
