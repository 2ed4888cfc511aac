import math
import re
from decimal import Decimal
from typing import Any, Optional

_EXPONENT_PADDING = re.compile(r"e([+-])0*(\d)")


def to_number(value: Any) -> Optional[float]:
    """
    Lenient numeric parse used everywhere a form value should be a number.
    Returns None for missing values, text that is not a number, booleans,
    NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def format_number(value: Any) -> str:
    """
    Default decimal text of a number: integral values without a fractional
    part, plain decimals down to 1e-6, exponent form outside [1e-6, 1e21).
    Absent or unparseable values give an empty string.
    """
    number = to_number(value)
    if number is None:
        return ""
    if number == 0:
        return "0"

    magnitude = abs(number)
    if magnitude >= 1e21 or magnitude < 1e-6:
        return _EXPONENT_PADDING.sub(r"e\1\2", repr(number))
    if number.is_integer():
        return str(int(number))
    return format(Decimal(repr(number)), "f")


def to_text(value: Any) -> Optional[str]:
    # AI output sends postal codes and plot numbers as JSON numbers
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value) or None
    return None
