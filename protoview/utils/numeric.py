# protoview/utils/numeric.py
"""
Numeric normalization shared by the classifier, the record model and the reconciler.

Analysis output arrives as loosely typed JSON (numbers, numeric strings,
nulls); everything numeric passes through these helpers exactly once at the
ingestion boundary.
"""
import math
import re
from typing import Any, Optional, Tuple, Union

from protoview.exceptions import MalformedRecordError

Number = Union[int, float]

_VERSION_PART = re.compile(r"(\d+)")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_float(value: Any, field: str = "value") -> Optional[float]:
    """Parse an optional float

    Args:
        value: Number, numeric string, None or empty string
        field: Field name used in the error message

    Returns:
        Float value, or None for missing input

    Raises:
        MalformedRecordError: For booleans, NaN, infinities and anything unparseable
    """
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise MalformedRecordError(f"Field {field} must be numeric, got bool",
                                   {"field": field, "value": value})
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"Field {field} is not a number: {value!r}",
                                   {"field": field, "value": value}) from e
    if not math.isfinite(result):
        raise MalformedRecordError(f"Field {field} must be finite, got {value!r}",
                                   {"field": field, "value": value})
    return result


def to_int(value: Any, field: str = "value") -> Optional[int]:
    """Parse an optional non-negative integer count

    Integral floats ('298.0', 298.0) are accepted; fractional values are not.

    Raises:
        MalformedRecordError: For negative, fractional or unparseable input
    """
    number = to_float(value, field)
    if number is None:
        return None
    if not number.is_integer():
        raise MalformedRecordError(f"Field {field} must be an integer count, got {value!r}",
                                   {"field": field, "value": value})
    if number < 0:
        raise MalformedRecordError(f"Field {field} must not be negative, got {value!r}",
                                   {"field": field, "value": value})
    return int(number)


def or_zero(value: Optional[Number]) -> Number:
    """Missing metric counts as zero"""
    return 0 if value is None else value


def check_number(value: Any, field: str, integral: bool = False) -> Optional[Number]:
    """Reject a present value that is not already a finite number

    Unlike to_float, strings are not parsed; this guards records built in
    code rather than from analysis output.

    Raises:
        MalformedRecordError: For strings, booleans, NaN, infinities and
            (with integral) fractional values
    """
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecordError(f"Field {field} must be numeric, got {type(value).__name__}",
                                   {"field": field, "value": value})
    if not math.isfinite(value):
        raise MalformedRecordError(f"Field {field} must be finite, got {value!r}",
                                   {"field": field, "value": value})
    if integral and not float(value).is_integer():
        raise MalformedRecordError(f"Field {field} must be an integer count, got {value!r}",
                                   {"field": field, "value": value})
    return value


def check_range(value: Optional[float], low: float, high: float, field: str) -> Optional[float]:
    """Reject a present value outside [low, high]

    Raises:
        MalformedRecordError: If value lies outside the closed interval
    """
    if value is not None and not (low <= value <= high):
        raise MalformedRecordError(f"Field {field} must lie in [{low}, {high}], got {value}",
                                   {"field": field, "value": value})
    return value


def version_key(tag: Optional[str]) -> Tuple:
    """Natural sort key for analysis version tags

    'v3' < 'v4' < 'v10'; digit runs compare as integers and the remaining
    text compares case-insensitively. A missing tag sorts before any tag.
    """
    if not tag:
        return ()
    parts = _VERSION_PART.split(tag.strip().lower())
    return tuple(int(p) if p.isdigit() else p for p in parts if p != "")
