"""
User-facing solution wrappers for residual and coefficient solves.

Both unpack as the classic three-tuple:

    residuals, iterations, converged = solve_residuals(y, fes)
    coefficients, iterations, converged = solve_coefficients(y, fes)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

import numpy as np
from numpy.typing import NDArray

from pyfixedeffects.core.result import Result
from pyfixedeffects.absorption._common import ResidualParams, CoefficientParams
from pyfixedeffects.absorption._fixed_effects import FixedEffect
from pyfixedeffects.absorption.design import AbsorptionDesign


@dataclass
class _SolutionBase:
    _result: Result[Any]
    _design: AbsorptionDesign

    @property
    def iterations(self) -> int:
        return self._result.iterations

    @property
    def converged(self) -> bool:
        return self._result.converged

    @property
    def method(self) -> str:
        return self._result.info['method']

    @property
    def n_obs(self) -> int:
        return self._design.n

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def _summary_footer(self) -> list[str]:
        lines = [
            "-" * 60,
            f"Method: {self.method} (backend {self.backend_name})",
            f"Iterations: {self.iterations}",
            f"Converged: {self.converged}",
        ]
        if self.timing:
            lines.append(f"Time: {self.timing.get('total_seconds', 0):.4f}s")
        for w in self.warnings:
            lines.append(f"Warning: {w}")
        return lines


@dataclass
class ResidualSolution(_SolutionBase):
    """Result of solve_residuals()."""
    _result: Result[ResidualParams]

    @property
    def residuals(self) -> NDArray[np.float64]:
        return self._result.params.residuals

    @property
    def fitted_values(self) -> NDArray[np.float64]:
        """Fixed-effect part of the response: y - residuals."""
        return self._design.y - self.residuals

    def __iter__(self) -> Iterator[Any]:
        return iter((self.residuals, self.iterations, self.converged))

    def summary(self) -> str:
        lines = [
            "Fixed Effects Residuals",
            "=" * 60,
            f"Observations: {self.n_obs}",
            f"Columns: {self._design.n_columns}",
            f"Fixed effects: {self.info['n_fixed_effects']}",
            f"Coefficients absorbed: {self.info['n_coefficients']}",
        ]
        lines.extend(self._summary_footer())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ResidualSolution(n={self.n_obs}, columns={self._design.n_columns}, "
            f"method={self.method!r}, iterations={self.iterations}, "
            f"converged={self.converged})"
        )


@dataclass
class CoefficientSolution(_SolutionBase):
    """Result of solve_coefficients()."""
    _result: Result[CoefficientParams]
    _fes: tuple[FixedEffect, ...] = ()

    @property
    def coefficients(self) -> list[NDArray[np.float64]]:
        """Per-observation coefficient of each fixed effect."""
        return list(self._result.params.coefficients)

    @property
    def level_coefficients(self) -> list[NDArray[np.float64]]:
        """Per-level coefficient of each fixed effect, normalized."""
        return list(self._result.params.level_coefficients)

    @property
    def n_components(self) -> int:
        return len(self._result.params.components)

    @property
    def components(self):
        return self._result.params.components

    @property
    def fitted_values(self) -> NDArray[np.float64]:
        """Sum over fixed effects of coefficient times interaction."""
        fitted = np.zeros(self.n_obs, dtype=np.float64)
        for coef, fe in zip(self._result.params.coefficients, self._fes):
            fitted += coef if fe.interaction is None else coef * fe.interaction
        return fitted

    @property
    def residuals(self) -> NDArray[np.float64]:
        return self._design.y - self.fitted_values

    def __iter__(self) -> Iterator[Any]:
        return iter((self.coefficients, self.iterations, self.converged))

    def summary(self) -> str:
        lines = [
            "Fixed Effects Coefficients",
            "=" * 60,
            f"Observations: {self.n_obs}",
            f"Connected components: {self.n_components}",
        ]
        if self.components:
            largest = max(c.n_obs for c in self.components)
            lines.append(f"Largest component: {largest} observations")
        lines += [
            "",
            f"{'Effect':<8} {'Kind':<12} {'Levels':>8} {'Mean':>14} {'Std':>14}",
            "-" * 60,
        ]
        for j, (coef, fe) in enumerate(zip(self._result.params.level_coefficients, self._fes)):
            kind = "pure" if fe.is_pure else "interacted"
            mean = float(np.mean(coef)) if coef.size else float('nan')
            std = float(np.std(coef)) if coef.size else float('nan')
            lines.append(f"  fe[{j}]  {kind:<12} {fe.n:>8} {mean:14.6f} {std:14.6f}")
        lines.extend(self._summary_footer())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CoefficientSolution(n={self.n_obs}, n_fes={len(self._fes)}, "
            f"components={self.n_components}, method={self.method!r}, "
            f"iterations={self.iterations}, converged={self.converged})"
        )
