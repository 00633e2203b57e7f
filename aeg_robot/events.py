"""Typed events published by a robot synchronizer."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from .schemas import FeedItem, Message

_LOGGER = logging.getLogger(__name__)


class LifecycleKind(StrEnum):
    """Events that carry no data."""

    INFO = "info"  # Static appliance information has been read
    APPLIANCE = "appliance"  # A state update has been processed
    PRE_UPDATE = "preUpdate"  # Derived status is about to be recomputed


@dataclass(frozen=True)
class StatusChangedEvent:
    """A single status field has changed value."""

    field: str
    new_value: Any
    old_value: Any


@dataclass(frozen=True)
class MessageEvent:
    """A new message has been reported by the robot."""

    message: Message


@dataclass(frozen=True)
class FeedEvent:
    """A new account feed item relates to the robot."""

    item: FeedItem


@dataclass(frozen=True)
class LifecycleEvent:
    """A lifecycle point in the synchronizer has been reached."""

    kind: LifecycleKind


RobotEvent = StatusChangedEvent | MessageEvent | FeedEvent | LifecycleEvent

_E = TypeVar("_E", StatusChangedEvent, MessageEvent, FeedEvent, LifecycleEvent)


def _event_key(event: RobotEvent) -> str | None:
    if isinstance(event, StatusChangedEvent):
        return event.field
    if isinstance(event, LifecycleEvent):
        return event.kind
    return None


class RobotEventDispatcher:
    """Publish/subscribe routing of robot events to registered callbacks.

    Callbacks are registered for an event type, optionally narrowed by a key:
    the field name for StatusChangedEvent, or the kind for LifecycleEvent.
    """

    def __init__(self) -> None:
        self._callbacks: defaultdict[
            tuple[type[RobotEvent], str | None], list[Callable[[Any], None]]
        ] = defaultdict(list)

    def register_callback(
        self,
        event_type: type[_E],
        callback: Callable[[_E], None],
        key: str | None = None,
    ) -> Callable[[], None]:
        """Register a callback for events of a particular type.

        Args:
            event_type: Class of the events to receive.
            callback: Function to call with each matching event.
            key: Optional field name or lifecycle kind to filter on.

        Returns:
            A function to unregister the callback.

        """
        callbacks = self._callbacks[(event_type, key)]
        callbacks.append(callback)

        def unregister() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unregister

    def dispatch(self, event: RobotEvent) -> None:
        """Deliver an event to every matching callback."""
        event_type = type(event)
        key = _event_key(event)
        targets = list(self._callbacks.get((event_type, None), []))
        if key is not None:
            targets.extend(self._callbacks.get((event_type, key), []))
        for callback in targets:
            try:
                callback(event)
            except Exception:
                _LOGGER.exception("Error in %s callback", event_type.__name__)
