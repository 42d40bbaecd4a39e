"""
Device detection for the torch-based GPU backend.

torch is an optional dependency; every import is local so the rest of
the package works without it.
"""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class DeviceInfo:
    """
    Information about a compute device.

    Attributes:
        device_type: 'cpu', 'cuda' or 'mps'
        device_index: Device index (None for CPU)
        name: Human-readable device name
        supports_fp64: Whether the device can run float64 kernels
    """
    device_type: Literal['cpu', 'cuda', 'mps']
    device_index: int | None
    name: str
    supports_fp64: bool

    def __str__(self) -> str:
        if self.device_index is None:
            return f"{self.device_type.upper()} ({self.name})"
        return f"{self.device_type.upper()}:{self.device_index} ({self.name})"

    @property
    def is_gpu(self) -> bool:
        return self.device_type in ('cuda', 'mps')

    @property
    def torch_device(self) -> str:
        if self.device_type == 'cuda':
            return f"cuda:{self.device_index}"
        return self.device_type


def detect_gpu() -> DeviceInfo | None:
    """Return the first available GPU, or None (also when torch is missing)."""
    try:
        import torch
    except ImportError:
        return None

    if torch.cuda.is_available():
        idx = torch.cuda.current_device()
        return DeviceInfo(
            device_type='cuda',
            device_index=idx,
            name=torch.cuda.get_device_properties(idx).name,
            supports_fp64=True,
        )
    if hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
        return DeviceInfo(
            device_type='mps',
            device_index=0,
            name='Apple Silicon GPU',
            supports_fp64=False,
        )
    return None


def select_device(prefer: Literal['auto', 'cpu', 'cuda', 'mps'] = 'auto') -> DeviceInfo:
    """
    Select a torch device.

    Args:
        prefer:
            - 'auto': first available GPU, else CPU tensors
            - 'cpu': CPU tensors (useful for testing the torch code path)
            - 'cuda' / 'mps': require that GPU type

    Raises:
        RuntimeError: If torch is missing or the requested GPU is unavailable
        ValueError: If prefer is not a known device
    """
    try:
        import torch  # noqa: F401
    except ImportError as e:
        raise RuntimeError(
            "The GPU backend requires PyTorch. Install pyfixedeffects[gpu] "
            "or use method='lsmr'."
        ) from e

    if prefer not in ('auto', 'cpu', 'cuda', 'mps'):
        raise ValueError(f"Unknown device: {prefer!r}. Use 'auto', 'cpu', 'cuda' or 'mps'.")

    cpu = DeviceInfo(device_type='cpu', device_index=None, name='torch', supports_fp64=True)
    if prefer == 'cpu':
        return cpu

    gpu = detect_gpu()
    if prefer == 'auto':
        return gpu if gpu is not None else cpu
    if gpu is None or gpu.device_type != prefer:
        raise RuntimeError(
            f"{prefer.upper()} requested but not available. "
            f"Ensure PyTorch is installed with {prefer.upper()} support."
        )
    return gpu
