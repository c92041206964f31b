"""Argument validation shared by the manager classes."""
from decimal import Decimal, InvalidOperation
from typing import Any


class InvalidArgumentError(ValueError):
    """Raised when an argument fails validation."""
    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


def require_positive_id(value: Any, field: str = "id") -> int:
    """Return value as an int, rejecting non-integers and ids below 1."""
    if isinstance(value, bool):
        raise InvalidArgumentError(field, "must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(field, "must be an integer")
    if number != value and not isinstance(value, str):
        raise InvalidArgumentError(field, "must be an integer")
    if number < 1:
        raise InvalidArgumentError(field, "must be positive")
    return number


def require_quantity(value: Any, field: str = "quantity") -> int:
    """Return value as an int quantity of at least 1."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(field, "must be an integer")
    if value < 1:
        raise InvalidArgumentError(field, "must be at least 1")
    return value


def require_price(value: Any, field: str = "price") -> Decimal:
    """Return value as a non-negative Decimal rounded to cents."""
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidArgumentError(field, "must be a decimal number")
    if not price.is_finite():
        raise InvalidArgumentError(field, "must be a decimal number")
    if price < 0:
        raise InvalidArgumentError(field, "must not be negative")
    return price.quantize(Decimal("0.01"))
