from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


CENTS = Decimal("0.01")

# Maximum monetary amount: 9,999,999,999.99 (fits Numeric(12, 2))
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT = Decimal("9999999999.99")
MAX_QUANTITY = 10_000


class CommerceError(Exception):
    """Base for every error the commerce core reports to its callers."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class ValidationError(CommerceError):
    """400-level input problem."""
    status_code = 400


class PreconditionError(CommerceError):
    """412-level missing prerequisite (e.g., no open cash session)."""
    status_code = 412


class StateError(CommerceError):
    """409-level operation not allowed for the entity's current status."""
    status_code = 409


class ConflictError(CommerceError):
    """409-level uniqueness conflict (e.g., second open session for a location)."""
    status_code = 409


class NotFoundError(CommerceError):
    status_code = 404


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, field: str, *, allow_negative: bool = False) -> Decimal:
    """
    Coerce client input into a 2-place Decimal.

    Accepts Decimal, int and numeric strings. Floats are converted through
    their repr so 10.1 stays 10.10 instead of 10.0999...
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required and must be a number")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain number (scientific notation not allowed)")
        try:
            amount = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    if amount < 0 and not allow_negative:
        raise ValidationError(f"{field} must be >= 0")

    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT}")

    return quantize_money(amount)


def parse_percentage(value: Any, field: str = "commission_percentage") -> Decimal:
    pct = parse_amount(value, field)
    if pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return pct


def parse_quantity(value: Any, field: str = "quantity") -> int:
    """Positive integer; floats, decimals and booleans are rejected."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a positive integer")

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValidationError(f"{field} must be a positive integer")
        value = int(stripped)

    if not isinstance(value, int):
        raise ValidationError(f"{field} must be a positive integer")

    if value < 1:
        raise ValidationError(f"{field} must be >= 1")

    if value > MAX_QUANTITY:
        raise ValidationError(f"{field} must be <= {MAX_QUANTITY}")

    return value


def require_id(value: Any, field: str) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 1:
        raise ValidationError(f"{field} must be a positive integer id")
    return value


def optional_id(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return require_id(value, field)


def require_text(value: Any, field: str, *, min_length: int = 1, max_length: int | None = None) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if len(text) < min_length:
        raise ValidationError(
            f"{field} must have at least {min_length} characters",
            details={"min_length": min_length, "length": len(text)},
        )
    if max_length is not None and len(text) > max_length:
        raise ValidationError(
            f"{field} cannot exceed {max_length} characters",
            details={"max_length": max_length, "length": len(text)},
        )
    return text


def optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters")
    return text


def format_amount(value: Decimal | None) -> str | None:
    """Serialize money as a 2-place string so JSON clients never see float drift."""
    if value is None:
        return None
    return str(quantize_money(Decimal(value)))
