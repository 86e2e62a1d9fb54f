from __future__ import annotations

from typing import Any


# Maximum amount: 9,999,999,999.99 in cents
# Keeps arithmetic and column values in a sane range
MAX_AMOUNT_CENTS = 999_999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class InsufficientStockError(ValidationError):
    """Requested quantity exceeds what inventory holds."""


class NotFoundError(LookupError):
    """404-level missing customer or transaction."""


class ConflictError(ValueError):
    """409-level business rule conflict."""


class AlreadyVoidedError(ConflictError):
    """Reversal attempted on a transaction that is already voided."""


class InventoryReconciliationError(ConflictError):
    """Strict mode: a reversal could not locate every physical cylinder."""


class InventoryReconciliationWarning(UserWarning):
    """
    Non-fatal: fewer matching cylinders were found during a reversal than the
    quantity being reversed. The reversal still commits.
    """

    def __init__(self, message: str, *, cylinder_type: str | None = None, expected: int = 0, found: int = 0):
        super().__init__(message)
        self.cylinder_type = cylinder_type
        self.expected = expected
        self.found = found

    def to_dict(self) -> dict:
        return {
            "message": str(self),
            "cylinder_type": self.cylinder_type,
            "expected": self.expected,
            "found": self.found,
        }


def coerce_int(value: Any, field: str, *, default: int | None = None, minimum: int | None = 0) -> int:
    """
    Strict integer coercion for quantities and cent amounts.

    Rejects booleans, floats with a fractional part, scientific notation and
    decimals in strings. Values below `minimum` raise ValidationError.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise ValidationError(f"{field} is required")
        return default

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        if minimum == 0:
            raise ValidationError(f"{field} cannot be negative")
        raise ValidationError(f"{field} must be at least {minimum}")
    if abs(result) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} is out of range")
    return result


def coerce_float(value: Any, field: str, *, default: float | None = None) -> float | None:
    """Non-negative float coercion for weights (kg)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if result != result or result < 0:  # NaN or negative
        raise ValidationError(f"{field} must be a non-negative number")
    return result


def coerce_optional_str(value: Any, max_length: int = 255) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if len(s) > max_length:
        raise ValidationError(f"Value exceeds {max_length} characters")
    return s
