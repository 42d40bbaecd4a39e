"""
PyFixedEffects: high-dimensional fixed effects for Python.

Removes the effect of one or more categorical fixed effects from a
response, returning either the residual (demeaned data) or per-level
coefficient estimates with a canonical normalization.

Submodules:
    absorption: Residual and coefficient solves with pluggable backends
    core: Exceptions, validation, result envelope, compute utilities
"""

__version__ = "0.1.0"

from pyfixedeffects import absorption
from pyfixedeffects.absorption import (
    FixedEffect,
    FixedEffectMatrix,
    fixed_effect_matrix,
    solve_coefficients,
    solve_residuals,
)

__all__ = [
    "__version__",
    "absorption",
    "FixedEffect",
    "FixedEffectMatrix",
    "fixed_effect_matrix",
    "solve_coefficients",
    "solve_residuals",
]
