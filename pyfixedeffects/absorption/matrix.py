"""
Fixed-effect matrix abstraction.

A FixedEffectMatrix is the weighted sparse design implied by a set of
fixed effects,

    A = diag(sqrtw) [D_1 ... D_k],   D_j[i, refs_j[i]] = interaction_j[i]  (1 if pure)

together with whatever the selected backend prepared from it
(equilibrated operator, factorization, device tensors). It is built once
and can serve any number of residual and coefficient solves.
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy import sparse

from pyfixedeffects.core.exceptions import DimensionError
from pyfixedeffects.core.validation import check_array, check_finite, check_ndim, check_nonnegative
from pyfixedeffects.absorption._fixed_effects import FixedEffect
from pyfixedeffects.absorption.backends import get_backend
from pyfixedeffects.absorption.design import check_fixed_effects


class FixedEffectMatrix:
    """
    Weighted sparse fixed-effect design bound to one solver backend.

    The column blocks follow the order of ``fes``; that order is also the
    order of returned coefficient vectors.

    Args:
        fes: Fixed effects, all over the same observations
        sqrtw: Square root of the observation weights (n_obs,)
        method: Backend tag, see pyfixedeffects.absorption.backends
        **backend_options: Passed to the backend constructor
            (e.g. n_workers, device, use_fp64)

    Raises:
        ValidationError: If a fixed effect carries a missing reference or
            interaction value, or sqrtw is non-finite or negative
        DimensionError: If the fixed effects or sqrtw differ in length
    """

    def __init__(
        self,
        fes: Sequence[FixedEffect],
        sqrtw: NDArray[np.float64],
        method: str = 'lsmr',
        **backend_options: Any,
    ):
        self._fes = tuple(check_fixed_effects(fes))
        self._sqrtw = _check_sqrtw(sqrtw, self._fes[0].n_obs)
        self._method = method
        self._offsets = np.concatenate(
            [[0], np.cumsum([fe.n for fe in self._fes])]
        ).astype(np.int64)
        self._A = _build_sparse(self._fes, self._sqrtw, self._offsets)
        self._backend = get_backend(method, **backend_options)
        self._handle = self._backend.prepare(self)

    @property
    def fes(self) -> tuple[FixedEffect, ...]:
        return self._fes

    @property
    def sqrtw(self) -> NDArray[np.float64]:
        return self._sqrtw

    @property
    def method(self) -> str:
        return self._method

    @property
    def backend(self):
        return self._backend

    @property
    def handle(self) -> Any:
        """Backend-specific state prepared at construction."""
        return self._handle

    @property
    def A(self) -> sparse.csc_matrix:
        """Weighted design, shape (n_obs, n_coefficients)."""
        return self._A

    @property
    def offsets(self) -> NDArray[np.int64]:
        """Start column of each fixed effect, plus the total column count."""
        return self._offsets

    @property
    def n_obs(self) -> int:
        return int(self._A.shape[0])

    @property
    def n_coefficients(self) -> int:
        return int(self._A.shape[1])

    def split(self, x: NDArray[np.float64]) -> list[NDArray[np.float64]]:
        """Cut a stacked coefficient vector into one vector per fixed effect."""
        return [
            np.array(x[self._offsets[j]:self._offsets[j + 1]], dtype=np.float64)
            for j in range(len(self._fes))
        ]

    def __repr__(self) -> str:
        return (
            f"FixedEffectMatrix(n_obs={self.n_obs}, n_fes={len(self._fes)}, "
            f"n_coefficients={self.n_coefficients}, method={self._method!r})"
        )


def _build_sparse(
    fes: tuple[FixedEffect, ...],
    sqrtw: NDArray[np.float64],
    offsets: NDArray[np.int64],
) -> sparse.csc_matrix:
    """Assemble diag(sqrtw) [D_1 ... D_k] in CSC format."""
    n_obs = sqrtw.shape[0]
    rows = np.tile(np.arange(n_obs, dtype=np.int64), len(fes))
    cols = np.concatenate([fe.refs + offsets[j] for j, fe in enumerate(fes)])
    data = np.concatenate([
        sqrtw if fe.interaction is None else sqrtw * fe.interaction
        for fe in fes
    ])
    return sparse.csc_matrix((data, (rows, cols)), shape=(n_obs, int(offsets[-1])))


def _check_sqrtw(sqrtw: NDArray[np.float64], n_obs: int) -> NDArray[np.float64]:
    sqrtw = check_array(sqrtw, 'sqrtw')
    check_ndim(sqrtw, 1, 'sqrtw')
    check_finite(sqrtw, 'sqrtw')
    check_nonnegative(sqrtw, 'sqrtw')
    if sqrtw.shape[0] != n_obs:
        raise DimensionError(
            f"sqrtw: has {sqrtw.shape[0]} elements, expected {n_obs} (observations)"
        )
    return sqrtw
