"""Typed event channel for photo progress and submission state.

The coordinator and orchestrator publish events here instead of calling UI
callbacks directly, so they stay independent of any UI toolkit.

Usage:
    channel = EventChannel()
    channel.subscribe(EntryProgressEvent, lambda ev: print(ev.entry_id, ev.progress))
    channel.publish(EntryProgressEvent(entry_id="a", progress=40))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from core.models import EntryStatus
from core.services.interfaces import SubmissionState


@dataclass(frozen=True)
class EntryProgressEvent:
    entry_id: str
    progress: int


@dataclass(frozen=True)
class EntryStatusEvent:
    entry_id: str
    status: EntryStatus
    error: str | None = None


@dataclass(frozen=True)
class SubmissionStateEvent:
    state: SubmissionState
    spot_id: str | None = None


Event = EntryProgressEvent | EntryStatusEvent | SubmissionStateEvent
Handler = Callable[[Event], None]


class EventChannel:
    """Synchronous publish/subscribe keyed by event type.

    Handlers run in publish order. A failing handler is logged and does not
    stop delivery to the others or break the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Handler]] = {}
        self._catch_all: list[Handler] = []

    def subscribe(self, event_type: type | None, handler: Handler) -> None:
        """Subscribe `handler` to `event_type`, or to every event when None."""
        bucket = self._catch_all if event_type is None else self._subscribers.setdefault(event_type, [])
        if handler not in bucket:
            bucket.append(handler)

    def unsubscribe(self, event_type: type | None, handler: Handler) -> None:
        bucket = self._catch_all if event_type is None else self._subscribers.get(event_type, [])
        if handler in bucket:
            bucket.remove(handler)

    def publish(self, event: Event) -> None:
        handlers = list(self._subscribers.get(type(event), [])) + list(self._catch_all)
        for handler in handlers:
            try:
                handler(event)
            except Exception as ex:  # pylint: disable=broad-exception-caught
                logger.error("Event handler {} failed for {}: {}", handler, event, ex)

    def clear(self) -> None:
        self._subscribers.clear()
        self._catch_all.clear()


class EventRecorder:
    """Collects every event published on a channel, in order."""

    def __init__(self, channel: EventChannel | None = None) -> None:
        self.events: list[Event] = []
        if channel is not None:
            channel.subscribe(None, self)

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Event]:
        return [e for e in self.events if isinstance(e, event_type)]
