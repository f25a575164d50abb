"""
Pytest Configuration and Fixtures for the Warthug Test Suite
=============================================================

Purpose
-------
Shared fixtures for the economy engine tests: a controllable clock, a
throwaway SQLite database per test, a fully wired engine, and a few domain
object factories.

Responsibilities
----------------
- Force the testing environment before any warthug module is imported
- Database lifecycle for service tests (fresh file per test)
- Engine construction with an injected clock and private event bus
- Domain model factories for pure unit tests

Architecture Notes
------------------
- Unit and domain tests never touch the database
- Service tests run against SQLite through aiosqlite (no Docker needed)
- Integration tests (tests/integration) start PostgreSQL via testcontainers
"""

from __future__ import annotations

import os

# Must be set before warthug.core.config is imported: Config loads and
# logging is configured at import time.
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_TO_FILE"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio

from warthug.core.config.config import Config
from warthug.core.database.service import DatabaseService
from warthug.core.event.bus import EventBus
from warthug.domain.models.card import Card
from warthug.engine import EconomyEngine

# Noon, so "same UTC day" checks have room on both sides
T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# DATABASE FIXTURES (Service Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch) -> AsyncGenerator[None, None]:
    """
    Fresh SQLite database for one test.

    Scope: function (each test gets its own file, so no cleanup between tests)
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'warthug.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setattr(Config, "DATABASE_URL", url)

    await DatabaseService.shutdown()
    await DatabaseService.initialize()
    await DatabaseService.create_schema()

    yield

    await DatabaseService.shutdown()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest_asyncio.fixture
async def engine(
    database, clock: FakeClock, event_bus: EventBus
) -> AsyncGenerator[EconomyEngine, None]:
    """EconomyEngine wired to the test database, clock and bus."""
    economy = EconomyEngine(event_bus=event_bus, clock=clock)
    await economy.start()
    yield economy
    await economy.stop()


# ============================================================================
# DOMAIN FACTORIES (Unit Tests)
# ============================================================================


def make_card(
    key: str = "gold",
    *,
    base_price: int = 100,
    price_increase_rate: str = "1.15",
    per_hour_increase: int = 10,
    per_hour_increase_rate: str = "1.1",
    base_cooldown: int = 10,
    cooldown_increase_rate: str = "1.2",
    required_level: int = 0,
    upgrade_count: int = 0,
    last_upgrade_time: Optional[datetime] = None,
) -> Card:
    return Card(
        key=key,
        name=key.replace("_", " ").title(),
        base_price=base_price,
        price_increase_rate=Decimal(price_increase_rate),
        per_hour_increase=per_hour_increase,
        per_hour_increase_rate=Decimal(per_hour_increase_rate),
        base_cooldown=base_cooldown,
        cooldown_increase_rate=Decimal(cooldown_increase_rate),
        required_level=required_level,
        upgrade_count=upgrade_count,
        last_upgrade_time=last_upgrade_time,
        is_unlocked=upgrade_count > 0,
    )


def card_payload(name: str = "Gold Mine", **overrides) -> dict:
    """Valid create_card() input."""
    payload = {
        "name": name,
        "base_price": 100,
        "price_increase_rate": "1.15",
        "per_hour_increase": 10,
        "per_hour_increase_rate": "1.1",
        "base_cooldown": 10,
        "cooldown_increase_rate": "1.2",
        "required_level": 0,
        "image_url": "https://cdn.example.com/cards/gold.png",
    }
    payload.update(overrides)
    return payload


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def assert_domain_event_emitted(domain_model, event_name: str) -> bool:
    """
    Check that a domain model recorded a specific event.

    Usage:
        player.tap(now)
        assert assert_domain_event_emitted(player, "player.tapped")
    """
    events = domain_model.get_pending_events()
    return any(event.event_name == event_name for event in events)


def get_domain_event_payload(domain_model, event_name: str) -> dict | None:
    """
    Payload of the first recorded event with the given name.

    Usage:
        player.claim_starter_bonus()
        payload = get_domain_event_payload(player, "starter_bonus.claimed")
        assert payload["amount"] == 10_000
    """
    for event in domain_model.get_pending_events():
        if event.event_name == event_name:
            return event.payload
    return None
