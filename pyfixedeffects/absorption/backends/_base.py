"""
Backend contract for fixed-effect solves.

A backend turns the weighted least-squares problem

    min_x || b - A x ||,   A = diag(sqrtw) [D_1 ... D_k]

into a solution, an iteration count and a convergence flag. Concrete
backends only implement prepare() and lstsq(); the residual and
coefficient entry points are shared.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from pyfixedeffects.absorption.matrix import FixedEffectMatrix


class FixedEffectBackend(ABC):
    """
    Abstract solver backend.

    Backends hold configuration only; everything derived from the data
    lives in the handle returned by prepare() and stored on the matrix.

    Attributes:
        device: torch device the backend computes on, None for CPU backends.
    """

    device: Any = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier, '{device}_{algorithm}'."""

    @abstractmethod
    def prepare(self, matrix: FixedEffectMatrix) -> Any:
        """Precompute whatever lstsq() needs from matrix.A."""

    @abstractmethod
    def lstsq(
        self,
        b: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        """
        Least-squares solution for one right-hand side.

        Returns:
            (x, iterations, converged) with x of length matrix.n_coefficients
        """

    def solve_columns(
        self,
        B: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        """Solve every column of B; iterations is the max, converged the AND."""
        X = np.empty((matrix.n_coefficients, B.shape[1]), dtype=np.float64)
        iterations, converged = 0, True
        for k in range(B.shape[1]):
            X[:, k], it, conv = self.lstsq(B[:, k], matrix, max_iter, tol)
            iterations = max(iterations, it)
            converged = converged and conv
        return X, iterations, converged

    def solve_residuals(
        self,
        y: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        """Weighted residual b - A x, same shape as y."""
        B = y.reshape(y.shape[0], -1)
        X, iterations, converged = self.solve_columns(B, matrix, max_iter, tol)
        R = B - matrix.A @ X
        return R.reshape(y.shape), iterations, converged

    def solve_coefficients(
        self,
        y: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[list[NDArray[np.float64]], int, bool]:
        """One per-level coefficient vector per fixed effect."""
        x, iterations, converged = self.lstsq(y, matrix, max_iter, tol)
        return matrix.split(x), iterations, converged
