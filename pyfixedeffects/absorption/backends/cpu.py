"""
CPU LSMR backend.

Solves the sparse least-squares problem with scipy's LSMR (Fong and
Saunders, 2011) after equilibrating the columns of A to unit norm,
which is the diagonal preconditioner usually applied to dummy matrices.
Matrix responses can be solved column-by-column in a thread or process
pool.
"""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy import sparse
from scipy.sparse.linalg import lsmr

from pyfixedeffects.absorption.backends._base import FixedEffectBackend

if TYPE_CHECKING:
    from pyfixedeffects.absorption.matrix import FixedEffectMatrix

# lsmr istop 7: iteration limit reached. conlim=0 disables the condition
# limit stop, which rank-deficient dummy designs would otherwise trip.
_NOT_CONVERGED = frozenset({7})


@dataclass(frozen=True)
class EquilibratedOperator:
    """Column-equilibrated design: A_scaled = A diag(scale)."""
    A_scaled: sparse.csr_matrix
    scale: NDArray[np.float64]


def equilibrate(A: sparse.spmatrix) -> EquilibratedOperator:
    """Scale every nonzero column of A to unit Euclidean norm.

    Zero columns (unused levels, levels whose observations all have zero
    weight) keep scale 0 so their coefficient stays exactly 0.
    """
    norms = np.sqrt(np.asarray(A.multiply(A).sum(axis=0)).ravel())
    scale = np.zeros_like(norms)
    np.divide(1.0, norms, out=scale, where=norms > 0)
    return EquilibratedOperator(
        A_scaled=sparse.csr_matrix(A @ sparse.diags(scale)),
        scale=scale,
    )


def _lsmr_column(
    op: EquilibratedOperator,
    b: NDArray[np.float64],
    max_iter: int,
    tol: float,
) -> tuple[NDArray[np.float64], int, bool]:
    # module level so that process pools can pickle it
    z, istop, itn = lsmr(op.A_scaled, b, atol=tol, btol=tol, conlim=0, maxiter=max_iter)[:3]
    return z * op.scale, int(itn), istop not in _NOT_CONVERGED


class CPULSMRBackend(FixedEffectBackend):
    """
    Iterative backend using scipy.sparse.linalg.lsmr.

    Args:
        n_workers: Pool size for matrix responses. None solves columns
            sequentially.
        processes: Use a process pool instead of a thread pool.
    """

    def __init__(self, n_workers: int | None = None, processes: bool = False):
        if n_workers is not None and n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {n_workers}")
        self.n_workers = n_workers
        self.processes = processes

    @property
    def name(self) -> str:
        if self.n_workers is None:
            return 'cpu_lsmr'
        return 'cpu_lsmr_parallel' if self.processes else 'cpu_lsmr_threads'

    def prepare(self, matrix: FixedEffectMatrix) -> EquilibratedOperator:
        return equilibrate(matrix.A)

    def lstsq(
        self,
        b: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        return _lsmr_column(matrix.handle, b, max_iter, tol)

    def solve_columns(
        self,
        B: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        if self.n_workers is None or B.shape[1] == 1:
            return super().solve_columns(B, matrix, max_iter, tol)

        executor_cls = ProcessPoolExecutor if self.processes else ThreadPoolExecutor
        n_cols = B.shape[1]
        with executor_cls(max_workers=min(self.n_workers, n_cols)) as executor:
            outcomes = list(executor.map(
                _lsmr_column,
                [matrix.handle] * n_cols,
                [np.ascontiguousarray(B[:, k]) for k in range(n_cols)],
                [max_iter] * n_cols,
                [tol] * n_cols,
            ))

        X = np.column_stack([x for x, _, _ in outcomes])
        iterations = max(it for _, it, _ in outcomes)
        converged = all(conv for _, _, conv in outcomes)
        return X, iterations, converged
