# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Event aggregator for solution and file change notifications.

Producers (file watchers, solution loaders) publish events; the provider
subscribes to react by rebuilding the tree.

Example:
    >>> events = EventAggregator()
    >>> sub = events.subscribe(EventType.FILE, lambda evt: print(evt.path))
    >>> events.publish(FileEvent('/ws/App.sln', FileChangeType.CHANGED))
    /ws/App.sln
    >>> sub.dispose()
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .logging import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    SOLUTION = 'solution'
    FILE = 'file'


class FileChangeType(str, Enum):
    CREATED = 'created'
    CHANGED = 'changed'
    DELETED = 'deleted'


@dataclass(frozen=True)
class SolutionEvent:
    """A solution was loaded, changed or closed."""

    path: str | None = None

    event_type = EventType.SOLUTION


@dataclass(frozen=True)
class FileEvent:
    """A file in the workspace changed on disk."""

    path: str
    change_type: FileChangeType = FileChangeType.CHANGED

    event_type = EventType.FILE


Event = SolutionEvent | FileEvent
SubscriberCallback = Callable[[Event], None]


class Subscription:
    """Handle returned by EventAggregator.subscribe(); dispose() unsubscribes."""

    __slots__ = ('_aggregator', 'event_type', 'subscriber_id')

    def __init__(self, aggregator: EventAggregator, event_type: EventType, subscriber_id: int) -> None:
        self._aggregator: EventAggregator | None = aggregator
        self.event_type = event_type
        self.subscriber_id = subscriber_id

    @property
    def disposed(self) -> bool:
        return self._aggregator is None

    def dispose(self) -> None:
        if self._aggregator is not None:
            self._aggregator._unsubscribe(self.event_type, self.subscriber_id)
            self._aggregator = None


class EventAggregator:
    """Synchronous publish/subscribe keyed by EventType."""

    def __init__(self) -> None:
        self._subscribers: dict[EventType, dict[int, SubscriberCallback]] = {
            event_type: {} for event_type in EventType
        }
        self._next_id = 0

    def subscribe(self, event_type: EventType, callback: SubscriberCallback) -> Subscription:
        """Register callback for events of event_type.

        Args:
            event_type: The kind of event to receive.
            callback: Called with each published event of that kind.

        Returns:
            A Subscription whose dispose() removes the callback.
        """
        self._next_id += 1
        self._subscribers[event_type][self._next_id] = callback
        return Subscription(self, event_type, self._next_id)

    def _unsubscribe(self, event_type: EventType, subscriber_id: int) -> None:
        self._subscribers[event_type].pop(subscriber_id, None)

    def publish(self, event: Event) -> None:
        """Deliver event to every subscriber of its type.

        A failing subscriber is logged and does not stop delivery to the
        others.
        """
        for callback in list(self._subscribers[event.event_type].values()):
            try:
                callback(event)
            except Exception:
                logger.exception("event_subscriber_failed", event_type=event.event_type.value)

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscribers[event_type])
