"""
Direct CPU backends: dense column-pivoted QR and reduced Cholesky.

A fixed-effect design with two or more fixed effects is always rank
deficient (each extra fixed effect repeats the intercept of the first
one within every connected component). The QR backend truncates at the
numerical rank and returns a basic solution; the Cholesky backend drops
the redundant columns found from the connected components and factors
the remaining positive definite normal equations. Both return exact
least-squares solutions, which the identification step then normalizes.

Both densify A, so they suit small and medium problems.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray
import scipy.linalg as sla

from pyfixedeffects.core.exceptions import NotPositiveDefiniteError
from pyfixedeffects.absorption._components import connected_components, pure_indices
from pyfixedeffects.absorption._fixed_effects import FixedEffect
from pyfixedeffects.absorption.backends._base import FixedEffectBackend

if TYPE_CHECKING:
    from pyfixedeffects.absorption.matrix import FixedEffectMatrix


@dataclass(frozen=True)
class TruncatedQR:
    """Leading rank-r block of A P = Q R."""
    Q: NDArray[np.float64]
    R: NDArray[np.float64]
    columns: NDArray[np.int64]
    rank: int


class CPUQRBackend(FixedEffectBackend):
    """
    Direct backend using LAPACK's column-pivoted QR (geqp3).

    Columns beyond the numerical rank get coefficient 0.
    """

    @property
    def name(self) -> str:
        return 'cpu_qr'

    def prepare(self, matrix: FixedEffectMatrix) -> TruncatedQR:
        A = matrix.A.toarray()
        Q, R, perm = sla.qr(A, mode='economic', pivoting=True)

        diag_R = np.abs(np.diag(R))
        if diag_R.size and diag_R[0] > 0:
            tol = max(A.shape) * np.finfo(A.dtype).eps * diag_R[0]
            rank = int(np.sum(diag_R > tol))
        else:
            rank = 0

        return TruncatedQR(
            Q=Q[:, :rank],
            R=R[:rank, :rank],
            columns=perm[:rank].astype(np.int64),
            rank=rank,
        )

    def lstsq(
        self,
        b: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        qr: TruncatedQR = matrix.handle
        x = np.zeros(matrix.n_coefficients, dtype=np.float64)
        if qr.rank > 0:
            x[qr.columns] = sla.solve_triangular(qr.R, qr.Q.T @ b, lower=False)
        return x, 1, True


@dataclass(frozen=True)
class ReducedCholesky:
    """Cholesky factor of A_S'A_S for an identified column subset S of A."""
    factor: tuple[NDArray[np.float64], bool] | None
    A: Any
    columns: NDArray[np.int64]


def identified_columns(matrix: FixedEffectMatrix) -> NDArray[np.int64]:
    """
    Columns of A that remain after removing its structural rank deficiency.

    Drops all-zero columns (unused levels, levels seen only with zero
    weight) and, within every connected component of the pure fixed
    effects over positively weighted observations, the first level of
    each pure fixed effect except the first one.
    """
    A = matrix.A
    keep = np.asarray(abs(A).sum(axis=0)).ravel() > 0

    eligible = pure_indices(matrix.fes)
    if len(eligible) > 1:
        rows = matrix.sqrtw > 0
        restricted = [
            FixedEffect(refs=matrix.fes[j].refs[rows], n=matrix.fes[j].n)
            for j in eligible
        ]
        for component in connected_components(restricted):
            for k in range(1, len(eligible)):
                keep[matrix.offsets[eligible[k]] + component.levels[k][0]] = False

    return np.flatnonzero(keep).astype(np.int64)


class CPUCholeskyBackend(FixedEffectBackend):
    """
    Direct backend using Cholesky on the reduced normal equations

        A_S'A_S z = A_S'b,   x[S] = z,   x[not S] = 0

    where S = identified_columns(A). Removing one column per extra pure
    fixed effect and connected component leaves A_S with full column
    rank, so A_S'A_S is positive definite and the factorization needs no
    shift. Each solve is followed by REFINEMENT_STEPS steps of iterative
    refinement against the unsquared residual b - A_S z.

    Interactions that are collinear with other fixed effects are not
    removed and surface as NotPositiveDefiniteError; use method='qr' for
    such designs.
    """

    REFINEMENT_STEPS = 2

    @property
    def name(self) -> str:
        return 'cpu_cholesky'

    def prepare(self, matrix: FixedEffectMatrix) -> ReducedCholesky:
        columns = identified_columns(matrix)
        A = matrix.A[:, columns].tocsc()
        if columns.size == 0:
            return ReducedCholesky(factor=None, A=A, columns=columns)
        G = (A.T @ A).toarray()
        try:
            factor = sla.cho_factor(G, lower=True)
        except sla.LinAlgError as e:
            raise NotPositiveDefiniteError(
                f"Cholesky factorization of A'A failed: {e}",
                matrix_name="A'A",
                min_diagonal=float(np.min(np.diag(G))) if G.size else None,
            ) from e
        return ReducedCholesky(factor=factor, A=A, columns=columns)

    def lstsq(
        self,
        b: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        chol: ReducedCholesky = matrix.handle
        x = np.zeros(matrix.n_coefficients, dtype=np.float64)
        if chol.columns.size == 0:
            return x, 1, True
        z = sla.cho_solve(chol.factor, chol.A.T @ b)
        for _ in range(self.REFINEMENT_STEPS):
            z += sla.cho_solve(chol.factor, chol.A.T @ (b - chol.A @ z))
        x[chol.columns] = z
        return x, 1, True
