"""
Input validation for values arriving from outside the engine.

Purpose
-------
Normalise raw request values (strings, floats, ints) into the types the
domain expects, raising `ValidationError` with a clear field name when they
are malformed. Every failure is logged at DEBUG through one helper so
rejections are visible without flooding the logs.

Usage
-----
    from warthug.modules.shared.validators import InputValidator

    amount = InputValidator.validate_positive_integer(raw, "amount")
    section = InputValidator.validate_choice(raw_section, "section", CARD_SECTIONS)
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Final, NoReturn, Optional, Sequence, Tuple
from urllib.parse import urlparse

from warthug.core.logging.logger import get_logger
from warthug.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

IMAGE_EXTENSIONS: Final[Tuple[str, ...]] = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Centralized input validation.

    All methods are stateless, return the validated value on success and
    raise ValidationError on failure.
    """

    # =========================================================================
    # NUMBERS
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """
        Validate and convert a value to int with optional inclusive bounds.

        Accepts ints, integral floats and numeric strings. Booleans and
        fractional values are rejected rather than truncated.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number")

        if isinstance(value, float):
            if not value.is_integer():
                _raise_validation_error(field_name, value, f"Must be a whole number, got {value}")
            int_value = int(value)
        else:
            try:
                int_value = int(str(value).strip())
            except (ValueError, TypeError):
                _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name, int_value, f"Must be at least {min_value}, got {int_value}"
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name, int_value, f"Cannot exceed {max_value}, got {int_value}"
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any, field_name: str, max_value: Optional[int] = None
    ) -> int:
        return InputValidator.validate_integer(value, field_name, min_value=1, max_value=max_value)

    @staticmethod
    def validate_non_negative_integer(
        value: Any, field_name: str, max_value: Optional[int] = None
    ) -> int:
        return InputValidator.validate_integer(value, field_name, min_value=0, max_value=max_value)

    @staticmethod
    def validate_rate(value: Any, field_name: str) -> Decimal:
        """Growth rate for a card curve: a decimal number >= 1."""
        decimal_value = InputValidator.validate_decimal(value, field_name)
        if decimal_value < 1:
            _raise_validation_error(field_name, value, "Must be at least 1")
        return decimal_value

    @staticmethod
    def validate_decimal(value: Any, field_name: str, min_value: Decimal = Decimal(0)) -> Decimal:
        if value is None or isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a number")
        try:
            decimal_value = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            _raise_validation_error(field_name, value, f"Must be a number, got '{value}'")
        if not decimal_value.is_finite():
            _raise_validation_error(field_name, value, "Must be a finite number")
        if decimal_value < min_value:
            _raise_validation_error(field_name, value, f"Must be at least {min_value}")
        return decimal_value

    # =========================================================================
    # STRINGS & CHOICES
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = 1,
        max_length: Optional[int] = None,
        allowed_chars: Optional[str] = None,
    ) -> str:
        """
        Validate a string with optional length and character-class constraints.

        `allowed_chars` is a regex character class body, e.g. 'a-zA-Z0-9_'.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        str_value = str(value).strip()

        if min_length is not None and len(str_value) < min_length:
            _raise_validation_error(
                field_name, str_value, f"Must be at least {min_length} characters"
            )

        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(field_name, str_value, f"Cannot exceed {max_length} characters")

        if allowed_chars is not None and not re.fullmatch(f"[{allowed_chars}]+", str_value):
            _raise_validation_error(field_name, str_value, "Contains invalid characters")

        return str_value

    @staticmethod
    def validate_choice(value: Any, field_name: str, valid_choices: Sequence[str]) -> str:
        """
        Validate that value is one of the allowed choices (case-insensitive).

        Returns the canonical spelling from `valid_choices`.
        """
        str_value = str(value).strip().lower()
        for choice in valid_choices:
            if choice.lower() == str_value:
                return choice

        _raise_validation_error(
            field_name,
            value,
            f"Invalid choice '{value}'. Must be one of: {', '.join(valid_choices)}",
        )

    # =========================================================================
    # TIME
    # =========================================================================

    @staticmethod
    def validate_datetime(value: Any, field_name: str) -> datetime:
        """Accept a datetime or ISO-8601 string; naive values are taken as UTC."""
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            except ValueError:
                _raise_validation_error(field_name, value, "Must be an ISO-8601 timestamp")
        else:
            _raise_validation_error(field_name, value, "Must be a timestamp")

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    # =========================================================================
    # URLS
    # =========================================================================

    @staticmethod
    def validate_url(value: Any, field_name: str) -> str:
        """Absolute http(s) URL."""
        url = InputValidator.validate_string(value, field_name, max_length=512)
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            _raise_validation_error(field_name, value, "Must be an absolute http(s) URL")
        return url

    @staticmethod
    def validate_image_url(value: Any, field_name: str) -> str:
        url = InputValidator.validate_url(value, field_name)
        if not url.lower().endswith(IMAGE_EXTENSIONS):
            _raise_validation_error(
                field_name, value, f"Must end with one of {', '.join(IMAGE_EXTENSIONS)}"
            )
        return url
