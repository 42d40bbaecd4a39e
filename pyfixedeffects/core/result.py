"""
Generic result container for PyFixedEffects computations.

Every backend solve is wrapped in the same immutable envelope, so the
solution wrappers can read iterations, convergence, timing and
warnings without knowing which backend produced them.
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope.

    Attributes:
        params: Domain-specific payload (residuals or coefficients)
        info: Structured metadata; always holds 'method', 'iterations'
              and 'converged'
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the backend that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=ResidualParams(residuals=r),
        ...     info={'method': 'lsmr', 'iterations': 12, 'converged': True},
        ...     timing={'total_seconds': 0.01},
        ...     backend_name='cpu_lsmr',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def iterations(self) -> int:
        return int(self.info['iterations'])

    @property
    def converged(self) -> bool:
        return bool(self.info['converged'])

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
