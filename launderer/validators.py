"""Shared validation utilities"""

import math


def validate_coordinate(value, name: str, limit: float) -> float:
    """
    Validate a latitude/longitude value.

    Accepts any finite real number within [-limit, limit], including 0.
    Rejects None, booleans, strings, NaN and +/-infinity.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number")
    # ints compare exactly, so huge values never reach float()
    if not -limit <= value <= limit:
        raise ValueError(f"{name} must be between {-limit:g} and {limit:g}")
    return float(value)


def validate_latitude(value) -> float:
    return validate_coordinate(value, "latitude", 90)


def validate_longitude(value) -> float:
    return validate_coordinate(value, "longitude", 180)


def validate_optional_latitude(value):
    return None if value is None else validate_latitude(value)


def validate_optional_longitude(value):
    return None if value is None else validate_longitude(value)
