"""
Shared compute infrastructure for PyFixedEffects.

This is NOT where solver backends live (those are in
absorption/backends/). This module holds backend-agnostic utilities.

Submodules:
    device: GPU detection and device selection for the torch backend
    timing: Section timer used by every solve
    tolerances: Numerical comparison tiers per method family
"""

from pyfixedeffects.core.compute.device import (
    DeviceInfo,
    detect_gpu,
    select_device,
)
from pyfixedeffects.core.compute.timing import Timer
from pyfixedeffects.core.compute.tolerances import ToleranceTier, select_tolerance

__all__ = [
    "DeviceInfo",
    "detect_gpu",
    "select_device",
    "Timer",
    "ToleranceTier",
    "select_tolerance",
]
