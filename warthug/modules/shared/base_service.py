"""
Base Service Foundation

Purpose
-------
Foundational class for every economy service. Services orchestrate the
Player aggregate and the stores: they open transactions (through the
per-player operation runner), call domain methods, and publish the
resulting domain events.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access
- Event emission helpers
- An injectable clock so every time-based rule can be tested exactly
- Input validation helpers that raise ValidationError

What this class does NOT do:
- Manage database transactions (DatabaseService / PlayerOperationRunner)
- Contain economy rules (those live on the Player aggregate)

Usage
-----
    class EnergyService(BaseService):
        def __init__(self, runner, config, event_bus, logger, clock=None):
            super().__init__(config, event_bus, logger, clock)
            self._runner = runner
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from warthug.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from warthug.core.event.bus import EventBus

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseService:
    """
    Base class for all economy services.

    Args:
        config: Configuration object exposing `get(key, default)`
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
        clock: Zero-argument callable returning the current UTC instant
    """

    def __init__(
        self,
        config: Any,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config
        self._events = event_bus
        self.log = logger
        self._clock: Clock = clock or utc_now

    def now(self) -> datetime:
        """Current instant according to the injected clock."""
        return self._clock()

    def get_config(self, key: str, default: Optional[Any] = None) -> Any:
        return self._config.get(key, default)

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish a domain event for cross-module communication."""
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    # ------------------------------------------------------------------ #
    # Validation helpers
    # ------------------------------------------------------------------ #

    def validate_positive_int(self, value: Any, name: str) -> None:
        """
        Validate that a value is a positive integer.

        Raises:
            ValidationError: If value is not an int or is <= 0
        """
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive integer, got {value!r}")

    def validate_non_negative_int(self, value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                name, f"{name} must be a non-negative integer, got {value!r}"
            )

    def validate_choice(self, value: Any, name: str, choices: Any) -> None:
        if value not in choices:
            raise ValidationError(
                name, f"{name} must be one of {', '.join(map(str, choices))}, got {value!r}"
            )
