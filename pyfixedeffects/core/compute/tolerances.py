"""
Tolerance tiers for numerical comparison of solver output.

Direct methods (QR, Cholesky) agree with each other to near machine
precision. Iterative methods stop at the requested tolerance, so their
residuals are only accurate to a small multiple of it. FP32 GPU runs
are looser still.

Used by the test suite to compare backends against each other.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


DIRECT_FP64 = ToleranceTier(
    rtol=1e-8,
    atol=1e-8,
    name='direct_fp64',
    description='Dense QR / Cholesky in double precision',
)

ITERATIVE_FP64 = ToleranceTier(
    rtol=1e-5,
    atol=1e-5,
    name='iterative_fp64',
    description='LSMR in double precision at the default tol=1e-8',
)

GPU_FP32 = ToleranceTier(
    rtol=1e-3,
    atol=1e-3,
    name='gpu_fp32',
    description='LSMR on GPU in single precision',
)

def select_tolerance(method: str, use_fp64: bool = True) -> ToleranceTier:
    """Select the comparison tier for a method tag."""
    if method.endswith('gpu') and not use_fp64:
        return GPU_FP32
    if method.startswith('lsmr'):
        return ITERATIVE_FP64
    return DIRECT_FP64
