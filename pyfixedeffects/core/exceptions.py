"""
Exception hierarchy for PyFixedEffects.

All exceptions inherit from PyFixedEffectsError so callers can catch any
library-specific error in one place.

Non-convergence of an iterative backend is NOT an exception: it is
reported through the solution's ``converged`` flag and a RuntimeWarning.
"""


class PyFixedEffectsError(Exception):
    """Base exception for all PyFixedEffects errors."""
    pass


class ValidationError(PyFixedEffectsError):
    """
    Input validation failed.

    Raised before any numeric work, e.g. when a fixed effect carries a
    missing reference or interaction value, or when weights are negative.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions or indices are inconsistent.

    Raised on length mismatches between the response, weights and fixed
    effects, and on level references outside ``[0, n)``.
    """
    pass


class NumericalError(PyFixedEffectsError):
    """A direct factorization of the fixed-effect matrix failed."""
    pass


class NotPositiveDefiniteError(NumericalError):
    """
    Normal-equations matrix is not positive definite.

    Raised by the Cholesky backend when the reduced normal equations still
    are not positive definite, e.g. an interaction collinear with another
    fixed effect.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        min_diagonal: Smallest diagonal entry of the factored matrix
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        min_diagonal: float | None = None,
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.min_diagonal = min_diagonal
