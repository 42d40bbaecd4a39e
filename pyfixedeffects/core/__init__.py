"""
Core infrastructure for PyFixedEffects.

Key components:
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing, tolerance tiers, device selection
"""

from pyfixedeffects.core.result import Result
from pyfixedeffects.core.exceptions import (
    PyFixedEffectsError,
    ValidationError,
    DimensionError,
    NumericalError,
    NotPositiveDefiniteError,
)

__all__ = [
    "Result",
    "PyFixedEffectsError",
    "ValidationError",
    "DimensionError",
    "NumericalError",
    "NotPositiveDefiniteError",
]
