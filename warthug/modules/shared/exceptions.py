"""
Domain exceptions for the Warthug economy engine.

Purpose
-------
Define the structured exception hierarchy for economy rules. Services and the
Player aggregate raise these for business rule violations and resource
constraints; the transport layer (out of scope here) translates them into
status codes using `error_code` and `to_dict()`.

Design Notes
------------
- All domain exceptions inherit from `WarthugDomainError`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the caller may retry the same request later
  - `error_code`: short, stable identifier for programmatic use
- A failed action never leaves a partially mutated player behind; every
  exception here is raised before the first mutation or rolls back with the
  surrounding transaction.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning (e.g., cooldowns)
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class WarthugDomainError(Exception):
    """
    Base exception for all Warthug domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise WarthugDomainError(
        ...     "Conversion failed",
        ...     {"reason": "ledger exhausted"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(WarthugDomainError):
    """
    Raised when a referenced player, card, task or vote event does not exist.

    Args:
        resource_type: Type of resource (e.g., "Player", "Card", "Task")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
        )


class ValidationError(WarthugDomainError):
    """
    Raised when input fails domain validation (malformed numeric input,
    unknown section, duplicate username, out-of-range choice).

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InsufficientResourcesError(WarthugDomainError):
    """
    Raised when a player lacks energy or points for an action.

    `resource` distinguishes the energy pool ("energy") from point-cost
    actions ("tap_points", "convertible_points").

    Args:
        resource: Name of the resource
        required: Amount required for the action
        current: Amount the player currently has
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(
        self,
        resource: str,
        required: Union[int, Decimal],
        current: Union[int, Decimal],
    ) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient {resource}: need {required:,}, have {current:,}",
            details={
                "resource": resource,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code=f"INSUFFICIENT_{resource.upper()}",
        )


class CooldownActiveError(WarthugDomainError):
    """
    Raised when a time-gated action is attempted before its window opens.

    Args:
        action: Name of the action on cooldown
        remaining_seconds: Time remaining until the window opens
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        action: str,
        remaining_seconds: float,
        error_code: str = "COOLDOWN_ACTIVE",
    ) -> None:
        self.action = action
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"{action} is on cooldown: {remaining_seconds:.1f}s remaining",
            details={
                "action": action,
                "remaining": remaining_seconds,
                "retry_after": remaining_seconds,
            },
            error_code=error_code,
        )


class TooEarlyError(CooldownActiveError):
    """Raised when a daily claim is attempted less than 24 hours after the last one."""

    def __init__(self, action: str, remaining_seconds: float) -> None:
        super().__init__(action, remaining_seconds, error_code="TOO_EARLY")


class LevelTooLowError(WarthugDomainError):
    """
    Raised when the player's level is below an action's required level.

    Args:
        action: What the player attempted
        required_level: Minimum level for the action
        current_level: Player's current level
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, action: str, required_level: int, current_level: int) -> None:
        self.action = action
        self.required_level = required_level
        self.current_level = current_level
        super().__init__(
            f"{action} requires level {required_level}, player is level {current_level}",
            details={
                "action": action,
                "required_level": required_level,
                "current_level": current_level,
            },
            error_code="LEVEL_TOO_LOW",
        )


class AlreadyClaimedError(WarthugDomainError):
    """
    Raised when a one-time or per-period claim is attempted twice.

    Args:
        reward: Name of the reward (e.g., "daily_claim", "starter_bonus")
        identifier: Optional identifier (e.g. referral id, task id)
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, reward: str, identifier: Optional[Any] = None) -> None:
        self.reward = reward
        self.identifier = identifier
        suffix = f" ({identifier})" if identifier is not None else ""
        super().__init__(
            f"{reward} already claimed{suffix}",
            details={"reward": reward, "identifier": identifier},
            error_code="ALREADY_CLAIMED",
        )


class NotEligibleError(WarthugDomainError):
    """
    Raised when a rank or threshold requirement is not met.

    Args:
        reward: What the player attempted to claim
        reason: Why the player is not eligible
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, reward: str, reason: str, **details: Any) -> None:
        self.reward = reward
        self.reason = reason
        super().__init__(
            f"Not eligible for {reward}: {reason}",
            details={"reward": reward, "reason": reason, **details},
            error_code="NOT_ELIGIBLE",
        )


class NothingToClaimError(WarthugDomainError):
    """Raised when a claim finds no pending balance."""

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG

    def __init__(self, reward: str) -> None:
        self.reward = reward
        super().__init__(
            f"No pending {reward} to claim",
            details={"reward": reward},
            error_code="NOTHING_TO_CLAIM",
        )


class InvalidOperationError(WarthugDomainError):
    """
    Raised when an action violates game rules not covered by a specific kind
    (expired task, closed vote event, auto-mine session already running).

    Example:
        >>> raise InvalidOperationError("cast_vote", "Voting event has ended")
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


class VersionConflictError(WarthugDomainError):
    """
    Raised by the player store when a compare-and-swap save finds the row at
    a different version than the one loaded. The whole operation must be
    retried after reloading.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, user_id: str, expected_version: int) -> None:
        self.user_id = user_id
        self.expected_version = expected_version
        super().__init__(
            f"Player {user_id} was modified concurrently (expected version {expected_version})",
            details={"user_id": user_id, "expected_version": expected_version},
            error_code="VERSION_CONFLICT",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """True if the exception marks an operation the caller may retry."""
    if isinstance(exc, WarthugDomainError):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, WarthugDomainError):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
