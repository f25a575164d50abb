"""
Warthug Shared Module

Domain-level foundations used by every economy subsystem:
- Domain exceptions and error helpers
- Base service and repository patterns
- Gameplay constants and pure formulas
- Input validation

Usage
-----
    from warthug.modules.shared import (
        BaseService,
        InsufficientResourcesError,
        geometric_value,
        InputValidator,
    )
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService, Clock, utc_now
from .exceptions import (
    AlreadyClaimedError,
    CooldownActiveError,
    ErrorSeverity,
    InsufficientResourcesError,
    InvalidOperationError,
    LevelTooLowError,
    NotEligibleError,
    NotFoundError,
    NothingToClaimError,
    TooEarlyError,
    ValidationError,
    VersionConflictError,
    WarthugDomainError,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from .formulas import (
    daily_claim_amount,
    doubled_cost,
    elapsed_ms,
    geometric_value,
    hours_elapsed,
    level_for_points,
    normalize_card_key,
    points_to_hug_points,
    quantize_hug_points,
    referral_rank_reward,
    referral_reward,
    regenerated_energy,
)
from .validators import InputValidator

__all__ = [
    # Base patterns
    "BaseRepository",
    "BaseService",
    "Clock",
    "utc_now",
    # Exceptions
    "AlreadyClaimedError",
    "CooldownActiveError",
    "ErrorSeverity",
    "InsufficientResourcesError",
    "InvalidOperationError",
    "LevelTooLowError",
    "NotEligibleError",
    "NotFoundError",
    "NothingToClaimError",
    "TooEarlyError",
    "ValidationError",
    "VersionConflictError",
    "WarthugDomainError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
    # Formulas
    "daily_claim_amount",
    "doubled_cost",
    "elapsed_ms",
    "geometric_value",
    "hours_elapsed",
    "level_for_points",
    "normalize_card_key",
    "points_to_hug_points",
    "quantize_hug_points",
    "referral_rank_reward",
    "referral_reward",
    "regenerated_energy",
    # Validation
    "InputValidator",
]
