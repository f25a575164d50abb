"""
Warthug EventBus: in-process async publish/subscribe.

Purpose
-------
Decouple the economy services from whatever reacts to their outcomes
(notifications, analytics, audit trails). Services publish domain events
after the player's transaction has committed; listeners subscribe by exact
name or wildcard pattern.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Run listeners in priority order, awaiting async callbacks
- Error isolation: one failing listener never blocks the others or the
  publishing service

Supported Patterns
------------------
- Exact:    "card.upgraded"
- Global:   "*"
- Prefix:   "auto_mine.*"
- Suffix:   "*.claimed"
- Sandwich: "referral.*.claimed"

Design Decisions
----------------
- Instance-based, so tests can build an isolated bus
- Designed for single-threaded asyncio usage
"""

from __future__ import annotations

import inspect
import itertools
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from warthug.core.logging.logger import get_logger

logger = get_logger(__name__)

EventPayload = Dict[str, Any]
CallbackType = Callable[[EventPayload], Union[Any, Awaitable[Any]]]


class ListenerPriority(IntEnum):
    """Lower value runs first."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


@dataclass
class EventListener:
    pattern: str
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False
    sequence: int = field(default=0, compare=False)

    @property
    def name(self) -> str:
        return getattr(self.callback, "__qualname__", None) or repr(self.callback)


def event_matches(event_name: str, pattern: str) -> bool:
    """
    Check if an event name matches a wildcard pattern.

    Examples
    --------
    >>> event_matches("auto_mine.claimed", "auto_mine.*")
    True
    >>> event_matches("daily.claimed", "*.claimed")
    True
    >>> event_matches("card.upgraded", "energy.*")
    False
    """
    if pattern == "*":
        return True

    if "*" not in pattern:
        return event_name == pattern

    while "**" in pattern:
        pattern = pattern.replace("**", "*")

    parts = pattern.split("*")

    if parts[0] and not event_name.startswith(parts[0]):
        return False

    if parts[-1] and not event_name.endswith(parts[-1]):
        return False

    # Middle pieces must appear in order between prefix and suffix
    idx = len(parts[0])
    end = len(event_name) - len(parts[-1])
    for mid in parts[1:-1]:
        if not mid:
            continue
        next_idx = event_name.find(mid, idx, end)
        if next_idx == -1:
            return False
        idx = next_idx + len(mid)

    return idx <= end


class EventBus:
    """
    Async EventBus for domain events.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("daily.claimed", on_daily_claimed)
    >>> await bus.publish("daily.claimed", {"user_id": "u-1", "reward": 1000})
    """

    def __init__(self) -> None:
        self._listeners: List[EventListener] = []
        self._counter = itertools.count(1)

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Ensure callback accepts exactly one parameter (the payload)."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", repr(callback))
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns the listener identifier for unsubscribe().

        Raises
        ------
        ValueError
            If the callback does not take exactly one parameter.
        """
        self._validate_callback_signature(callback)

        sequence = next(self._counter)
        listener = EventListener(
            pattern=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier or f"listener-{sequence}",
            once=once,
            sequence=sequence,
        )
        self._listeners.append(listener)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        before = len(self._listeners)
        self._listeners = [
            lst
            for lst in self._listeners
            if not (lst.pattern == event_name and lst.identifier == identifier)
        ]
        return len(self._listeners) < before

    def clear(self) -> None:
        count = len(self._listeners)
        self._listeners.clear()
        logger.info("EventBus: cleared all listeners", extra={"previous_listener_count": count})

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return len(self._listeners)
        return sum(1 for lst in self._listeners if event_matches(event_name, lst.pattern))

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Publish an event to every matching listener.

        Listeners run sequentially by priority then subscription order.
        A listener that raises is logged and skipped; its result is None.
        """
        listeners = sorted(
            (lst for lst in self._listeners if event_matches(event_name, lst.pattern)),
            key=lambda lst: (lst.priority, lst.sequence),
        )

        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        # Drop once-listeners before running them so re-entrant publishes skip them
        once_ids = {id(lst) for lst in listeners if lst.once}
        if once_ids:
            self._listeners = [lst for lst in self._listeners if id(lst) not in once_ids]

        results: List[Any] = []
        for listener in listeners:
            try:
                result = listener.callback(data)
                if inspect.isawaitable(result):
                    result = await result
                results.append(result)
            except Exception as exc:
                logger.error(
                    "EventBus: listener failed",
                    extra={
                        "event_name": event_name,
                        "listener_id": listener.identifier,
                        "listener": listener.name,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                    exc_info=True,
                )
                results.append(None)

        return results
