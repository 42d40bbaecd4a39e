"""
Solver dispatch for fixed-effect absorption.

Public API:
    solve_residuals()     — project the fixed effects out of y
    solve_coefficients()  — estimate and normalize per-level coefficients
    fixed_effect_matrix() — build a reusable FixedEffectMatrix
"""

from __future__ import annotations

import warnings
from typing import Any, Literal, Sequence

import numpy as np
from numpy.typing import ArrayLike

from pyfixedeffects.core.result import Result
from pyfixedeffects.core.compute.timing import Timer
from pyfixedeffects.absorption._common import ResidualParams, CoefficientParams
from pyfixedeffects.absorption._components import normalize
from pyfixedeffects.absorption._fixed_effects import FixedEffect, expand_coefficients
from pyfixedeffects.absorption.design import (
    AbsorptionDesign,
    check_fixed_effects,
    sqrt_weights,
)
from pyfixedeffects.absorption.matrix import FixedEffectMatrix
from pyfixedeffects.absorption.solution import ResidualSolution, CoefficientSolution


MethodChoice = Literal['lsmr', 'lsmr_threads', 'lsmr_parallel', 'qr', 'cholesky', 'lsmr_gpu']

DEFAULT_MAX_ITER = 10000
DEFAULT_TOL = 1e-8

FixedEffects = FixedEffect | Sequence[FixedEffect] | FixedEffectMatrix


def fixed_effect_matrix(
    fes: FixedEffect | Sequence[FixedEffect],
    weights: ArrayLike | None = None,
    *,
    method: MethodChoice = 'lsmr',
    **backend_options: Any,
) -> FixedEffectMatrix:
    """
    Build a FixedEffectMatrix that can be reused across solves.

    Args:
        fes: One FixedEffect or a sequence of them.
        weights: Non-negative observation weights (n,). Default: all ones.
        method: Solver backend:
            - 'lsmr': sparse LSMR (default)
            - 'lsmr_threads': LSMR, matrix columns in a thread pool
            - 'lsmr_parallel': LSMR, matrix columns in a process pool
            - 'qr': dense column-pivoted QR
            - 'cholesky': dense Cholesky of the reduced normal equations
            - 'lsmr_gpu': LSMR in PyTorch (CUDA / MPS)
        **backend_options: n_workers for the pooled LSMR methods;
            device and use_fp64 for 'lsmr_gpu'.

    Raises:
        ValidationError: If a fixed effect has a missing value, or the
            weights are invalid.
        DimensionError: If lengths are inconsistent.
        ValueError: If the method is unknown.
    """
    fe_list = check_fixed_effects(fes)
    sqrtw = sqrt_weights(weights, fe_list[0].n_obs)
    return FixedEffectMatrix(fe_list, sqrtw, method, **backend_options)


def solve_residuals(
    y: ArrayLike,
    fes: FixedEffects,
    weights: ArrayLike | None = None,
    *,
    method: MethodChoice = 'lsmr',
    max_iter: int = DEFAULT_MAX_ITER,
    tol: float = DEFAULT_TOL,
) -> ResidualSolution:
    """
    Residual of the weighted least-squares projection of y on the fixed effects.

    Solves min_x || sqrtw * (y - D x) || and returns y - D x̂, i.e. y with
    the fixed effects partialled out (weighted demeaning). Matrix
    responses are solved column by column.

    Args:
        y: Response vector (n,) or matrix (n, k). Not modified.
        fes: One FixedEffect, a sequence of them, or a prebuilt
            FixedEffectMatrix (then weights and method come from it).
        weights: Non-negative observation weights (n,). Default: all ones.
        method: Solver backend, see fixed_effect_matrix().
        max_iter: Maximum iterations of iterative backends.
        tol: Convergence tolerance of iterative backends.

    Returns:
        ResidualSolution; unpacks as (residuals, iterations, converged).
        Observations with zero weight get NaN residuals.

    Raises:
        ValidationError: If a fixed effect has a missing reference or
            interaction value (checked before anything else), or y /
            weights are invalid.
        DimensionError: If lengths are inconsistent.

    Example:
        >>> p1 = np.repeat(np.arange(5), 2)
        >>> p2 = np.tile(np.arange(2), 5)
        >>> fes = [FixedEffect.from_labels(p1), FixedEffect.from_labels(p2)]
        >>> residuals, iterations, converged = solve_residuals(rng.random(10), fes)
    """
    timer = Timer()
    timer.start()

    with timer.section('setup'):
        fep = _resolve_matrix(fes, weights, method)
        design = AbsorptionDesign.build(y, fep.sqrtw, allow_matrix=True)
    timer.device = fep.backend.device

    with timer.section('solve'):
        residuals, iterations, converged = fep.backend.solve_residuals(
            design.y_weighted, fep, max_iter, tol
        )

    with timer.section('unweight'):
        residuals = design.unweight(residuals)

    timer.stop()

    result = Result(
        params=ResidualParams(residuals=residuals),
        info=_info(fep, iterations, converged),
        timing=timer.result(),
        backend_name=fep.backend.name,
        warnings=_convergence_warnings('solve_residuals', iterations, converged),
    )
    return ResidualSolution(_result=result, _design=design)


def solve_coefficients(
    y: ArrayLike,
    fes: FixedEffects,
    weights: ArrayLike | None = None,
    *,
    method: MethodChoice = 'lsmr',
    max_iter: int = DEFAULT_MAX_ITER,
    tol: float = DEFAULT_TOL,
) -> CoefficientSolution:
    """
    Per-level fixed-effect coefficients of the weighted least-squares fit.

    The coefficients of two or more pure fixed effects are identified
    only up to a constant per connected component of co-occurring levels.
    The returned solution is normalized: within each component, every
    pure fixed effect except the first has zero mean over its levels,
    and the first absorbs the removed means. Interacted fixed effects
    are left as solved.

    Args:
        y: Response vector (n,). Not modified.
        fes: One FixedEffect, a sequence of them, or a prebuilt
            FixedEffectMatrix.
        weights: Non-negative observation weights (n,). Default: all ones.
        method: Solver backend, see fixed_effect_matrix().
        max_iter: Maximum iterations of iterative backends.
        tol: Convergence tolerance of iterative backends.

    Returns:
        CoefficientSolution; unpacks as (coefficients, iterations,
        converged) where coefficients holds one per-observation vector per
        fixed effect. Per-level vectors are in .level_coefficients.

    Raises:
        ValidationError: If a fixed effect has a missing reference or
            interaction value, or y / weights are invalid.
        DimensionError: If lengths are inconsistent or y is not 1D.

    Example:
        >>> p1 = np.repeat(np.arange(5), 2)
        >>> p2 = np.tile(np.arange(2), 5)
        >>> fes = [FixedEffect.from_labels(p1), FixedEffect.from_labels(p2)]
        >>> coefficients, iterations, converged = solve_coefficients(rng.random(10), fes)
    """
    timer = Timer()
    timer.start()

    with timer.section('setup'):
        fep = _resolve_matrix(fes, weights, method)
        design = AbsorptionDesign.build(y, fep.sqrtw, allow_matrix=False)
    timer.device = fep.backend.device

    with timer.section('solve'):
        level_coefs, iterations, converged = fep.backend.solve_coefficients(
            design.y_weighted, fep, max_iter, tol
        )

    with timer.section('normalize'):
        components = normalize(level_coefs, fep.fes)

    with timer.section('expand'):
        coefficients = expand_coefficients(level_coefs, fep.fes)

    timer.stop()

    info = _info(fep, iterations, converged)
    info['n_components'] = len(components)
    result = Result(
        params=CoefficientParams(
            coefficients=tuple(coefficients),
            level_coefficients=tuple(level_coefs),
            components=tuple(components),
        ),
        info=info,
        timing=timer.result(),
        backend_name=fep.backend.name,
        warnings=_convergence_warnings('solve_coefficients', iterations, converged),
    )
    return CoefficientSolution(_result=result, _design=design, _fes=fep.fes)


def _resolve_matrix(
    fes: FixedEffects,
    weights: ArrayLike | None,
    method: str,
) -> FixedEffectMatrix:
    if isinstance(fes, FixedEffectMatrix):
        if weights is not None:
            raise ValueError(
                "weights cannot be passed with a prebuilt FixedEffectMatrix; "
                "pass them to fixed_effect_matrix() instead"
            )
        return fes
    return fixed_effect_matrix(fes, weights, method=method)


def _info(fep: FixedEffectMatrix, iterations: int, converged: bool) -> dict[str, Any]:
    return {
        'method': fep.method,
        'iterations': int(iterations),
        'converged': bool(converged),
        'n_fixed_effects': len(fep.fes),
        'n_coefficients': fep.n_coefficients,
        'n_zero_weight': int(np.sum(fep.sqrtw == 0)),
    }


def _convergence_warnings(caller: str, iterations: int, converged: bool) -> tuple[str, ...]:
    if converged:
        return ()
    msg = (
        f"{caller} did not converge after {iterations} iterations; "
        f"returning the last iterate"
    )
    warnings.warn(msg, RuntimeWarning, stacklevel=3)
    return (msg,)
