"""
Input validation utilities for PyFixedEffects.

Validators follow the "fail fast, fail loud" principle: they raise with
the offending parameter name and the actual values instead of silently
correcting the input.

Each function validates ONE thing. Validation happens at the public
boundary; internal code trusts its inputs.
"""

from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pyfixedeffects.core.exceptions import ValidationError, DimensionError


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.floating[Any]]:
    """
    Validate and convert input to a float64 numpy array.

    A fresh array is always returned, so callers may scale it in place
    without touching the caller's buffer.

    Args:
        array: Input to validate
        name: Parameter name for error messages

    Returns:
        numpy.ndarray of dtype float64 (a copy)

    Raises:
        ValidationError: If input cannot be converted to a numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        raise ValidationError(
            f"{name}: converted to object dtype, indicating mixed types or non-numeric data"
        )

    if not np.issubdtype(result.dtype, np.number) and result.dtype != np.bool_:
        raise ValidationError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    return np.array(result, dtype=np.float64, copy=True)


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_ndim(
    array: NDArray[Any],
    ndim: int | tuple[int, ...],
    name: str,
) -> None:
    """
    Verify array has one of the allowed numbers of dimensions.

    Args:
        array: Array to check
        ndim: Allowed number of dimensions, or a tuple of allowed values
        name: Parameter name for error messages

    Raises:
        DimensionError: If array has a disallowed number of dimensions
    """
    allowed = (ndim,) if isinstance(ndim, int) else ndim
    if array.ndim not in allowed:
        expected = " or ".join(f"{d}D" for d in allowed)
        raise DimensionError(
            f"{name}: expected {expected} array, got {array.ndim}D with shape {array.shape}"
        )


def check_consistent_length(
    *arrays: NDArray[Any],
    names: tuple[str, ...],
) -> None:
    """
    Verify all arrays have the same length (first dimension).

    Raises:
        ValueError: If number of names doesn't match number of arrays
        DimensionError: If arrays have inconsistent lengths
    """
    if len(arrays) != len(names):
        raise ValueError(
            f"Number of arrays ({len(arrays)}) must match number of names ({len(names)})"
        )

    if len(arrays) < 2:
        return

    lengths = [arr.shape[0] for arr in arrays]
    if len(set(lengths)) > 1:
        details = ", ".join(f"{name}={length}" for name, length in zip(names, lengths))
        raise DimensionError(f"Inconsistent lengths: {details}")


def check_nonnegative(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify every entry is >= 0.

    Raises:
        ValidationError: If any entry is negative
    """
    negative = np.flatnonzero(array < 0)
    if negative.size > 0:
        raise ValidationError(
            f"{name}: {negative.size} negative value(s), first at index "
            f"{int(negative[0])} ({float(array[negative[0]])})"
        )
