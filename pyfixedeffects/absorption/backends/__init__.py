"""
Solver backends for fixed-effect absorption.

Available methods:
    'lsmr':          CPULSMRBackend, scipy LSMR on the equilibrated sparse design
    'lsmr_threads':  CPULSMRBackend solving response columns in a thread pool
    'lsmr_parallel': CPULSMRBackend solving response columns in a process pool
    'qr':            CPUQRBackend, dense column-pivoted QR
    'cholesky':      CPUCholeskyBackend, reduced normal equations
    'lsmr_gpu':      GPULSMRBackend, LSMR in PyTorch (requires torch)

Adding a backend only requires subclassing FixedEffectBackend and
registering it in get_backend().
"""

from __future__ import annotations

import os
from typing import Any

from pyfixedeffects.absorption.backends._base import FixedEffectBackend
from pyfixedeffects.absorption.backends.cpu import CPULSMRBackend
from pyfixedeffects.absorption.backends.cpu_direct import CPUQRBackend, CPUCholeskyBackend

METHODS = ('lsmr', 'lsmr_threads', 'lsmr_parallel', 'qr', 'cholesky', 'lsmr_gpu')


def get_backend(method: str, **options: Any) -> FixedEffectBackend:
    """
    Instantiate the backend for a method tag.

    Args:
        method: One of METHODS
        **options: Backend constructor options
            - n_workers (lsmr_threads, lsmr_parallel): pool size, default os.cpu_count()
            - device, use_fp64 (lsmr_gpu)

    Raises:
        ValueError: If the method is unknown or options don't apply to it
        RuntimeError: If 'lsmr_gpu' is requested but torch / the device is unavailable
    """
    if method == 'lsmr':
        _reject_options(method, options, allowed=())
        return CPULSMRBackend()

    elif method in ('lsmr_threads', 'lsmr_parallel'):
        _reject_options(method, options, allowed=('n_workers',))
        n_workers = options.get('n_workers') or os.cpu_count() or 1
        return CPULSMRBackend(n_workers=n_workers, processes=(method == 'lsmr_parallel'))

    elif method == 'qr':
        _reject_options(method, options, allowed=())
        return CPUQRBackend()

    elif method == 'cholesky':
        _reject_options(method, options, allowed=())
        return CPUCholeskyBackend()

    elif method == 'lsmr_gpu':
        _reject_options(method, options, allowed=('device', 'use_fp64'))
        from pyfixedeffects.absorption.backends.gpu import GPULSMRBackend
        return GPULSMRBackend(**options)

    else:
        raise ValueError(f"Unknown method: {method!r}. Choices are {', '.join(METHODS)}")


def _reject_options(method: str, options: dict[str, Any], allowed: tuple[str, ...]) -> None:
    unknown = sorted(set(options) - set(allowed))
    if unknown:
        raise ValueError(f"Options {unknown} do not apply to method {method!r}")


__all__ = [
    "METHODS",
    "FixedEffectBackend",
    "CPULSMRBackend",
    "CPUQRBackend",
    "CPUCholeskyBackend",
    "get_backend",
]
