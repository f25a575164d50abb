"""
Base domain model classes for the Warthug economy.

Purpose
-------
Foundational abstractions for rich domain models that own their business
rules and report state changes as domain events.

Responsibilities
----------------
- Base Entity with identity and equality semantics
- Base ValueObject for immutable value types
- Base AggregateRoot marking a consistency boundary
- Domain event collection for publishing after commit

Non-Responsibilities
--------------------
- Persistence (repositories)
- Database schema (SQLAlchemy models)
- Transactions and retries (operation runner)

Design Patterns
---------------
- **Entity**: object with identity that persists over time
- **Value Object**: immutable object defined by its attributes
- **Aggregate Root**: entry point for every change to the aggregate
- **Domain Events**: facts recorded by the aggregate, published by services

Usage Example
-------------
>>> class Player(AggregateRoot):
...     def tap(self, now):
...         ...
...         self.add_domain_event("player.tapped", {"user_id": self.id})
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, List, Optional


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass
class DomainEvent:
    """
    A state change recorded by an aggregate.

    Attributes
    ----------
    event_name : str
        Event name (e.g. "card.upgraded")
    payload : Dict[str, Any]
        Event payload
    occurred_at : datetime
        When the event was recorded (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# VALUE OBJECT
# ============================================================================


class ValueObject(ABC):
    """
    Base class for immutable value objects.

    Two value objects with the same attributes are equal. Subclasses are
    usually frozen dataclasses that validate themselves in __post_init__.
    """

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.__dict__ == other.__dict__

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.__dict__.items())))


# ============================================================================
# ENTITY
# ============================================================================


class Entity(ABC):
    """
    Base class for entities with identity.

    Entities are equal when their identifiers are equal, regardless of the
    rest of their state.
    """

    def __init__(self, entity_id: Hashable) -> None:
        self._id = entity_id
        self._domain_events: List[DomainEvent] = []

    @property
    def id(self) -> Any:
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return type(self) is type(other) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """
        Record a domain event to be published once the change is committed.

        Examples
        --------
        >>> self.add_domain_event("daily.claimed", {
        ...     "user_id": self.id,
        ...     "amount": 5000,
        ... })
        """
        self._domain_events.append(DomainEvent(event_name=event_name, payload=payload))

    def clear_domain_events(self) -> List[DomainEvent]:
        """Return and forget every recorded event."""
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events

    def get_pending_events(self) -> List[DomainEvent]:
        return self._domain_events.copy()


# ============================================================================
# AGGREGATE ROOT
# ============================================================================


class AggregateRoot(Entity):
    """
    Base class for aggregate roots.

    An aggregate is loaded, mutated and saved as one unit. External code
    refers to it by identity only and changes it only through its methods,
    which keep the aggregate's invariants.
    """

    pass


# ============================================================================
# SERIALISATION HELPERS
# ============================================================================


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 form used for instants stored inside JSON columns."""
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored instant; values without an offset are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
