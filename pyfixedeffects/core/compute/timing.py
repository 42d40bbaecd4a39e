"""
Execution timing for solves.

Sections are accumulated by name, so a section entered once per
response column reports the total time spent in it.
"""

import time
from contextlib import contextmanager
from typing import Any, Iterator


class Timer:
    """
    Accumulating section timer.

    When device is a CUDA torch device, it is synchronized before each
    clock reading so that asynchronous GPU kernels are included. The
    device may be assigned after start(), once it is known.

    Usage:
        timer = Timer()
        timer.start()
        with timer.section('solve'):
            x = lsmr(A, b)
        timer.stop()
        timer.result()   # {'total_seconds': ..., 'solve': ...}
    """

    def __init__(self, device: Any = None):
        self.device = device
        self._sections: dict[str, float] = {}
        self._start_time: float | None = None
        self._total: float | None = None

    def _now(self) -> float:
        if self.device is not None and getattr(self.device, 'type', None) == 'cuda':
            import torch
            torch.cuda.synchronize(self.device)
        return time.perf_counter()

    def start(self) -> None:
        self._start_time = self._now()

    def stop(self) -> None:
        if self._start_time is None:
            raise RuntimeError("Timer.stop() called before start()")
        self._total = self._now() - self._start_time

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        """Time a named section; repeated sections accumulate."""
        begin = self._now()
        try:
            yield
        finally:
            elapsed = self._now() - begin
            self._sections[name] = self._sections.get(name, 0.0) + elapsed

    def result(self) -> dict[str, float]:
        """
        Timing results as {'total_seconds': ..., <section>: ...}.

        Raises:
            RuntimeError: If called before stop()
        """
        if self._total is None:
            raise RuntimeError("Timer.result() called before stop()")
        return {'total_seconds': self._total, **self._sections}
