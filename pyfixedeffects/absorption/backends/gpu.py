"""
GPU LSMR backend using PyTorch.

Runs the LSMR recursion (Fong and Saunders, 2011) with the equilibrated
design held as sparse CSR tensors on the device. Scalars of the
recursion live on the host; each iteration costs two sparse
matrix-vector products plus a handful of vector updates on the device.

Supports CUDA, MPS (FP32 only) and CPU tensors.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

from pyfixedeffects.core.compute.device import select_device
from pyfixedeffects.absorption.backends._base import FixedEffectBackend
from pyfixedeffects.absorption.backends.cpu import equilibrate

if TYPE_CHECKING:
    import torch
    from pyfixedeffects.absorption.matrix import FixedEffectMatrix


@dataclass(frozen=True)
class DeviceOperator:
    """Equilibrated design and its transpose on the device."""
    A: 'torch.Tensor'
    At: 'torch.Tensor'
    scale: NDArray[np.float64]


def _sym_ortho(a: float, b: float) -> tuple[float, float, float]:
    """Stable Givens rotation (c, s, r) with [c s; -s c] [a; b] = [r; 0]."""
    if b == 0:
        return math.copysign(1.0, a) if a != 0 else 0.0, 0.0, abs(a)
    if a == 0:
        return 0.0, math.copysign(1.0, b), abs(b)
    if abs(b) > abs(a):
        tau = a / b
        s = math.copysign(1.0, b) / math.sqrt(1.0 + tau * tau)
        c = s * tau
        return c, s, b / s
    tau = b / a
    c = math.copysign(1.0, a) / math.sqrt(1.0 + tau * tau)
    s = c * tau
    return c, s, a / c


class GPULSMRBackend(FixedEffectBackend):
    """
    LSMR on a torch device.

    Args:
        device: 'auto', 'cuda', 'mps' or 'cpu' (see core.compute.device)
        use_fp64: Double precision (default). MPS requires use_fp64=False.
    """

    def __init__(self, device: str = 'auto', use_fp64: bool = True):
        import torch

        self.device_info = select_device(device)
        if use_fp64 and not self.device_info.supports_fp64:
            raise RuntimeError(
                f"{self.device_info} does not support float64. "
                "Use use_fp64=False or method='lsmr'."
            )
        self.device = torch.device(self.device_info.torch_device)
        self.dtype = torch.float64 if use_fp64 else torch.float32
        self.use_fp64 = use_fp64

    @property
    def name(self) -> str:
        precision = 'fp64' if self.use_fp64 else 'fp32'
        return f'gpu_lsmr_{precision}'

    def prepare(self, matrix: FixedEffectMatrix) -> DeviceOperator:
        op = equilibrate(matrix.A)
        return DeviceOperator(
            A=self._to_device(op.A_scaled),
            At=self._to_device(op.A_scaled.T.tocsr()),
            scale=op.scale,
        )

    def _to_device(self, M: Any) -> 'torch.Tensor':
        import torch
        return torch.sparse_csr_tensor(
            torch.from_numpy(M.indptr.astype(np.int64)),
            torch.from_numpy(M.indices.astype(np.int64)),
            torch.from_numpy(M.data),
            size=M.shape,
            dtype=self.dtype,
            device=self.device,
        )

    def lstsq(
        self,
        b: NDArray[np.float64],
        matrix: FixedEffectMatrix,
        max_iter: int,
        tol: float,
    ) -> tuple[NDArray[np.float64], int, bool]:
        import torch

        op: DeviceOperator = matrix.handle
        n = matrix.n_coefficients

        def mv(M: 'torch.Tensor', v: 'torch.Tensor') -> 'torch.Tensor':
            return (M @ v.unsqueeze(1)).squeeze(1)

        u = torch.as_tensor(b, dtype=self.dtype, device=self.device).clone()
        x = torch.zeros(n, dtype=self.dtype, device=self.device)
        v = torch.zeros(n, dtype=self.dtype, device=self.device)

        beta = float(torch.linalg.vector_norm(u))
        normb = beta
        alpha = 0.0
        if beta > 0:
            u /= beta
            v = mv(op.At, u)
            alpha = float(torch.linalg.vector_norm(v))
        if alpha > 0:
            v /= alpha

        if alpha * beta == 0:
            return np.zeros(n, dtype=np.float64), 0, True

        zetabar, alphabar = alpha * beta, alpha
        rho, rhobar, cbar, sbar = 1.0, 1.0, 1.0, 0.0
        h = v.clone()
        hbar = torch.zeros_like(x)

        # running estimate of ||r||
        betadd, betad, rhodold = beta, 0.0, 1.0
        tautildeold, thetatilde, zeta, d = 0.0, 0.0, 0.0, 0.0
        normA2 = alpha * alpha

        itn, converged = 0, False
        while itn < max_iter:
            itn += 1

            u = mv(op.A, v) - alpha * u
            beta = float(torch.linalg.vector_norm(u))
            if beta > 0:
                u /= beta
                v = mv(op.At, u) - beta * v
                alpha = float(torch.linalg.vector_norm(v))
                if alpha > 0:
                    v /= alpha

            chat, shat, alphahat = _sym_ortho(alphabar, 0.0)

            rhoold = rho
            c, s, rho = _sym_ortho(alphahat, beta)
            thetanew = s * alpha
            alphabar = c * alpha

            rhobarold, zetaold = rhobar, zeta
            thetabar = sbar * rho
            cbar, sbar, rhobar = _sym_ortho(cbar * rho, thetanew)
            zeta = cbar * zetabar
            zetabar = -sbar * zetabar

            hbar = h - (thetabar * rho / (rhoold * rhobarold)) * hbar
            x = x + (zeta / (rho * rhobar)) * hbar
            h = v - (thetanew / rho) * h

            betaacute = chat * betadd
            betacheck = -shat * betadd
            betahat = c * betaacute
            betadd = -s * betaacute

            thetatildeold = thetatilde
            ctildeold, stildeold, rhotildeold = _sym_ortho(rhodold, thetabar)
            thetatilde = stildeold * rhobar
            rhodold = ctildeold * rhobar
            betad = -stildeold * betad + ctildeold * betahat

            tautildeold = (zetaold - thetatildeold * tautildeold) / rhotildeold
            taud = (zeta - thetatilde * tautildeold) / rhodold
            d += betacheck * betacheck
            normr = math.sqrt(d + (betad - taud) ** 2 + betadd * betadd)

            normA2 += beta * beta
            normA = math.sqrt(normA2)
            normA2 += alpha * alpha

            normar = abs(zetabar)
            normx = float(torch.linalg.vector_norm(x))

            test1 = normr / normb
            test2 = normar / (normA * normr) if normA * normr != 0 else math.inf
            rtol = tol + tol * normA * normx / normb
            if test2 <= tol or test1 <= rtol or 1.0 + test2 <= 1.0:
                converged = True
                break

        z = x.to(dtype=torch.float64, device='cpu').numpy()
        return z * op.scale, itn, converged
