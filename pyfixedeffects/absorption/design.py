"""
Design validation and weighting for fixed-effect solves.

AbsorptionDesign validates the response against the fixed effects and
holds the weighted copy that is handed to the backend. The caller's
response is never modified: scaling happens on a private copy, so no
exit path can leave a caller buffer scaled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pyfixedeffects.core.exceptions import DimensionError, ValidationError
from pyfixedeffects.core.validation import (
    check_array,
    check_consistent_length,
    check_finite,
    check_ndim,
    check_nonnegative,
)
from pyfixedeffects.absorption._fixed_effects import FixedEffect


@dataclass(frozen=True, eq=False)
class AbsorptionDesign:
    """Validated, weighted response.

    Attributes:
        y: Response as given, float64 copy, (n,) or (n, k).
        y_weighted: sqrtw * y (broadcast over columns).
        sqrtw: Square root of the observation weights (n,).
        n: Number of observations.
    """
    y: NDArray[np.float64]
    y_weighted: NDArray[np.float64]
    sqrtw: NDArray[np.float64]
    n: int

    @classmethod
    def build(
        cls,
        y: ArrayLike,
        sqrtw: NDArray[np.float64],
        *,
        allow_matrix: bool = True,
    ) -> AbsorptionDesign:
        """Validate y and scale a copy of it by sqrtw.

        Raises:
            ValidationError: If y is non-numeric or non-finite.
            DimensionError: If y has the wrong number of dimensions or
                rows, or is a matrix when allow_matrix is False.
        """
        y_arr = check_array(y, 'y')
        check_ndim(y_arr, (1, 2) if allow_matrix else 1, 'y')
        check_finite(y_arr, 'y')
        check_consistent_length(y_arr, sqrtw, names=('y', 'fixed effects'))

        w = sqrtw if y_arr.ndim == 1 else sqrtw[:, None]
        return cls(y=y_arr, y_weighted=y_arr * w, sqrtw=sqrtw, n=y_arr.shape[0])

    @property
    def n_columns(self) -> int:
        return 1 if self.y.ndim == 1 else int(self.y.shape[1])

    def unweight(self, residuals: NDArray[np.float64]) -> NDArray[np.float64]:
        """Divide weighted residuals by sqrtw; zero-weight rows become NaN."""
        w = self.sqrtw if residuals.ndim == 1 else self.sqrtw[:, None]
        with np.errstate(divide='ignore', invalid='ignore'):
            out = residuals / w
        out[np.broadcast_to(w == 0, out.shape)] = np.nan
        return out


def check_fixed_effects(fes: FixedEffect | Sequence[FixedEffect]) -> list[FixedEffect]:
    """
    Validate the fixed-effect list before any numeric work.

    Returns:
        The fixed effects as a list (a single FixedEffect is wrapped)

    Raises:
        ValidationError: If the list is empty, contains non-FixedEffect
            items, or any fixed effect has a missing reference or
            interaction value.
        DimensionError: If the fixed effects cover different numbers of
            observations.
    """
    fe_list = [fes] if isinstance(fes, FixedEffect) else list(fes)
    if not fe_list:
        raise ValidationError("fes: at least one FixedEffect required")
    for j, fe in enumerate(fe_list):
        if not isinstance(fe, FixedEffect):
            raise ValidationError(
                f"fes[{j}]: expected FixedEffect, got {type(fe).__name__}"
            )
    missing = [j for j, fe in enumerate(fe_list) if fe.has_missing]
    if missing:
        raise ValidationError(
            f"FixedEffect(s) at position {missing} have a missing value "
            f"for reference or interaction"
        )
    n_obs = {fe.n_obs for fe in fe_list}
    if len(n_obs) > 1:
        details = ", ".join(f"fes[{j}]={fe.n_obs}" for j, fe in enumerate(fe_list))
        raise DimensionError(f"Inconsistent lengths: {details}")
    return fe_list


def sqrt_weights(weights: ArrayLike | None, n_obs: int) -> NDArray[np.float64]:
    """
    Square root of validated observation weights (all ones if None).

    Raises:
        ValidationError: If weights are non-numeric, non-finite or negative
        DimensionError: If weights are not 1D of length n_obs
    """
    if weights is None:
        return np.ones(n_obs, dtype=np.float64)
    w = check_array(weights, 'weights')
    check_ndim(w, 1, 'weights')
    check_finite(w, 'weights')
    check_nonnegative(w, 'weights')
    if w.shape[0] != n_obs:
        raise DimensionError(
            f"weights: has {w.shape[0]} elements, expected {n_obs} (observations)"
        )
    return np.sqrt(w)
