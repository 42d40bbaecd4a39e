"""
Parameter payloads for fixed-effect solves.

Frozen containers placed inside Result[P] envelopes. No computation.
"""

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from pyfixedeffects.absorption._components import Component


@dataclass(frozen=True)
class ResidualParams:
    """Residual-mode payload.

    Attributes:
        residuals: Response with the fixed effects projected out, same
            shape as the response. NaN for zero-weight observations.
    """
    residuals: NDArray[np.float64]


@dataclass(frozen=True)
class CoefficientParams:
    """Coefficient-mode payload.

    Attributes:
        coefficients: Per-observation coefficient of each fixed effect (n,).
        level_coefficients: Per-level coefficient of each fixed effect (n_j,),
            after normalization.
        components: Connected components over the pure fixed effects
            (empty when fewer than two are pure).
    """
    coefficients: tuple[NDArray[np.float64], ...]
    level_coefficients: tuple[NDArray[np.float64], ...]
    components: tuple[Component, ...]
