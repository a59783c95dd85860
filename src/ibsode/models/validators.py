"""
Custom validators for physics-specific constraints in ibsode.

Two kinds of helpers live here. Sanitizers repair out-of-range run settings
(coupling percentage, convergence threshold, scheme name) and only log a
warning, since such settings must never abort a run. Validators reject
physically meaningless inputs such as negative beta functions by raising
``ValueError`` which Pydantic turns into a ``ValidationError``.
"""

from typing import Iterable, Optional
import logging
import math

import numpy as np

logger = logging.getLogger(__name__)

THRESHOLD_MIN = 1.0e-6
THRESHOLD_MAX = 1.0
THRESHOLD_DEFAULT = 1.0e-4


def sanitize_coupling_percentage(value: int) -> int:
    """
    Clamp a betatron coupling percentage to the accepted range.

    Values outside [0, 100] mean "no coupling" and are replaced by 0.

    Args:
        value: Coupling percentage requested by the caller

    Returns:
        Sanitized coupling percentage
    """
    if value < 0 or value > 100:
        logger.warning(f"Coupling percentage {value} outside [0, 100], using 0")
        return 0
    return value


def sanitize_threshold(value: float) -> float:
    """
    Replace an out-of-range convergence threshold by the default.

    Args:
        value: Relative change threshold requested by the caller

    Returns:
        ``value`` if it lies in [1e-6, 1], otherwise 1e-4
    """
    if not (THRESHOLD_MIN <= value <= THRESHOLD_MAX):
        logger.warning(
            f"Threshold {value} outside [{THRESHOLD_MIN}, {THRESHOLD_MAX}], using {THRESHOLD_DEFAULT}"
        )
        return THRESHOLD_DEFAULT
    return value


def sanitize_choice(value: object, allowed: Iterable[str], default: str, label: str) -> str:
    """
    Fall back to a default when a string option is not recognized.

    Args:
        value: Requested option (any type)
        allowed: Accepted option values
        default: Value used when ``value`` is not accepted
        label: Option name for the warning message

    Returns:
        The accepted option value
    """
    allowed = set(allowed)
    candidate = getattr(value, "value", value)
    if isinstance(candidate, str) and candidate in allowed:
        return candidate
    logger.warning(f"Unknown {label} {value!r}, using {default!r}")
    return default


def validate_positive(value: float, name: str) -> float:
    """
    Validate a strictly positive, finite scalar.

    Raises:
        ValueError: If the value is not finite or not positive
    """
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be positive and finite, got {value}")
    return value


def validate_positive_array(values: np.ndarray, name: str) -> np.ndarray:
    """
    Validate that every entry of an optics column is positive.

    Raises:
        ValueError: If any entry is non-positive or not finite
    """
    if not np.all(np.isfinite(values)) or np.any(values <= 0):
        raise ValueError(f"All entries of {name} must be positive and finite")
    return values


def validate_equal_lengths(columns: dict, expected: Optional[int] = None) -> int:
    """
    Validate that all per-element columns share one length.

    Args:
        columns: Mapping of column name to 1-D array
        expected: Required length, defaults to the length of the first column

    Returns:
        The common length

    Raises:
        ValueError: If a column length differs or the table is empty
    """
    lengths = {name: len(col) for name, col in columns.items()}
    if expected is None:
        expected = next(iter(lengths.values()), 0)
    if expected < 1:
        raise ValueError("Optics table must contain at least one element")
    wrong = {name: n for name, n in lengths.items() if n != expected}
    if wrong:
        raise ValueError(f"All columns must have length {expected}, got {wrong}")
    return expected
