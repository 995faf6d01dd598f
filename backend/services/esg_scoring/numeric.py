"""Validating decimal parsing and score rounding shared by the scorers."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Optional

from shared.models.exceptions import InvalidParameterException

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_IMPACT_WEIGHT = Decimal("1.0")

# Matches the Numeric(15, 4) parameter columns
MAX_MAGNITUDE = Decimal("1e11")
ROUNDING_PRECISION = 60


def parse_decimal(value: Any, field: str, parameter_name: Optional[str] = None,
                  allow_negative: bool = False) -> Decimal:
    """Parse ``value`` into a finite Decimal or raise InvalidParameterException.

    Floats go through ``str`` so that 0.1 parses as Decimal("0.1") rather than
    its binary expansion. Booleans are rejected even though they are ints.
    """
    label = f"'{field}' of parameter '{parameter_name}'" if parameter_name else f"'{field}'"

    if value is None or isinstance(value, bool):
        raise InvalidParameterException(
            f"Missing or non-numeric value for {label}", parameter_name=parameter_name, field=field
        )

    try:
        if isinstance(value, Decimal):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = Decimal(str(value))
        else:
            parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidParameterException(
            f"Value {value!r} for {label} is not a number", parameter_name=parameter_name, field=field
        )

    if not parsed.is_finite():
        raise InvalidParameterException(
            f"Value {value!r} for {label} is not finite", parameter_name=parameter_name, field=field
        )

    if abs(parsed) >= MAX_MAGNITUDE:
        raise InvalidParameterException(
            f"Value {value!r} for {label} is out of range; magnitude must be below {MAX_MAGNITUDE:E}",
            parameter_name=parameter_name, field=field
        )

    if not allow_negative and parsed < ZERO:
        raise InvalidParameterException(
            f"Value {value!r} for {label} must not be negative", parameter_name=parameter_name, field=field
        )

    return parsed


def parse_weight(value: Any, parameter_name: Optional[str] = None) -> Decimal:
    """Impact weights default to 1.0 when omitted; anything else must parse."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_IMPACT_WEIGHT
    return parse_decimal(value, "impact_weight", parameter_name)


def round_score(value: Decimal) -> Decimal:
    """Round half away from zero to two places"""
    with localcontext() as ctx:
        # Products of bounded inputs can exceed the default 28 digits
        ctx.prec = ROUNDING_PRECISION
        return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
