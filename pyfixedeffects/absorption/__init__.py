"""
Fixed-effect absorption: residuals and normalized coefficients.

Public API:
    solve_residuals(y, fes, weights=None, ...)     -> ResidualSolution
    solve_coefficients(y, fes, weights=None, ...)  -> CoefficientSolution
    fixed_effect_matrix(fes, weights=None, ...)    -> FixedEffectMatrix
    FixedEffect                                    — categorical grouping variable

Example:
    >>> from pyfixedeffects.absorption import FixedEffect, solve_residuals
    >>> fes = [FixedEffect.from_labels(firm), FixedEffect.from_labels(year)]
    >>> residuals, iterations, converged = solve_residuals(y, fes)
"""

from pyfixedeffects.absorption._fixed_effects import FixedEffect, expand_coefficients
from pyfixedeffects.absorption._components import Component, connected_components, rescale
from pyfixedeffects.absorption.matrix import FixedEffectMatrix
from pyfixedeffects.absorption.solution import ResidualSolution, CoefficientSolution
from pyfixedeffects.absorption.solvers import (
    DEFAULT_MAX_ITER,
    DEFAULT_TOL,
    MethodChoice,
    fixed_effect_matrix,
    solve_coefficients,
    solve_residuals,
)

__all__ = [
    "FixedEffect",
    "FixedEffectMatrix",
    "Component",
    "ResidualSolution",
    "CoefficientSolution",
    "MethodChoice",
    "DEFAULT_MAX_ITER",
    "DEFAULT_TOL",
    "connected_components",
    "expand_coefficients",
    "fixed_effect_matrix",
    "rescale",
    "solve_coefficients",
    "solve_residuals",
]
