"""Input validation for public deduplication operations"""
import math
from numbers import Real
from typing import Iterable, List

from core.exceptions import ValidationError


def _is_integer_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_identity(value, field: str = "venue_id") -> int:
    if not _is_integer_id(value) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer, got {value!r}", field=field)
    return value


def validate_identity_list(values: Iterable, field: str = "locality_ids") -> List[int]:
    """Reject strings, mappings and lists containing non-integer ids"""
    if values is None or isinstance(values, (str, bytes, dict)):
        raise ValidationError(f"{field} must be a list of integer ids", field=field)
    try:
        ids = list(values)
    except TypeError:
        raise ValidationError(f"{field} must be a list of integer ids", field=field)

    for value in ids:
        validate_identity(value, field=field)

    # Preserve order, drop repeats
    return list(dict.fromkeys(ids))


def validate_non_negative(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(value) or value < 0:
        raise ValidationError(f"{field} must be a non-negative number, got {value!r}", field=field)
    return value


def validate_similarity(value, field: str = "min_similarity") -> float:
    validate_non_negative(value, field)
    if value > 1.0:
        raise ValidationError(f"{field} must be between 0.0 and 1.0, got {value!r}", field=field)
    return float(value)


def validate_limit(value, field: str = "limit") -> int:
    if not _is_integer_id(value) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer, got {value!r}", field=field)
    return value
