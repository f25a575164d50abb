"""
Domain models package for the Warthug economy.

Purpose
-------
Rich domain models holding every economy rule. They perform no I/O: every
time-dependent method takes `now`, and persistence goes through
repositories that convert to and from the ORM rows in
`warthug.database.models`.

Base Classes
------------
- Entity: Objects with identity
- ValueObject: Immutable value types
- AggregateRoot: Consistency boundaries
- DomainEvent: State change notifications
"""

from .base import AggregateRoot, DomainEvent, Entity, ValueObject, from_iso, to_iso
from .card import Card
from .player import AutoClaimEntry, Player, PlayerIdentity, ReferralEntry

__all__ = [
    # Base classes
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    "from_iso",
    "to_iso",
    # Domain models
    "AutoClaimEntry",
    "Card",
    "Player",
    "PlayerIdentity",
    "ReferralEntry",
]
