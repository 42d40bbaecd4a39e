"""
Tests for the torch LSMR backend.

The recursion is exercised on CPU tensors whenever torch is installed;
the device tests additionally need CUDA or MPS and are skipped otherwise.
"""

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from pyfixedeffects.core.compute import Timer, detect_gpu, select_device, select_tolerance
from pyfixedeffects.absorption import fixed_effect_matrix, solve_coefficients, solve_residuals
from pyfixedeffects.absorption.backends import get_backend
import pyfixedeffects.absorption.solvers as solvers_module


HAS_GPU = detect_gpu() is not None


class TestTorchLSMROnCPU:

    def test_backend_name(self):
        assert get_backend('lsmr_gpu', device='cpu').name == 'gpu_lsmr_fp64'
        assert get_backend('lsmr_gpu', device='cpu', use_fp64=False).name == 'gpu_lsmr_fp32'

    def test_matches_reference(self, panel, reference, rng):
        y, fes, _, _ = panel
        w = rng.uniform(0.5, 2.0, size=y.shape[0])
        fep = fixed_effect_matrix(fes, w, method='lsmr_gpu', device='cpu')
        result = solve_residuals(y, fep, tol=1e-10)
        assert result.converged
        np.testing.assert_allclose(result.residuals, reference(y, fes, w), atol=1e-6)

    def test_matches_scipy_lsmr(self, panel):
        y, fes, _, _ = panel
        tier = select_tolerance('lsmr_gpu')
        torch_fep = fixed_effect_matrix(fes, method='lsmr_gpu', device='cpu')
        a = solve_residuals(y, torch_fep).residuals
        b = solve_residuals(y, fes, method='lsmr').residuals
        np.testing.assert_allclose(a, b, rtol=tier.rtol, atol=tier.atol)

    def test_coefficients_normalized(self, crossed):
        a = np.array([1.0, -2.0, 0.5, 3.0, 4.0])
        b = np.array([-1.5, 1.5])
        y = a[crossed[0].refs] + b[crossed[1].refs]
        fep = fixed_effect_matrix(crossed, method='lsmr_gpu', device='cpu')
        result = solve_coefficients(y, fep, tol=1e-12)
        np.testing.assert_allclose(result.level_coefficients[0], a, atol=1e-6)
        np.testing.assert_allclose(result.level_coefficients[1], b, atol=1e-6)

    def test_zero_response(self, crossed):
        fep = fixed_effect_matrix(crossed, method='lsmr_gpu', device='cpu')
        residuals, iterations, converged = solve_residuals(np.zeros(10), fep)
        np.testing.assert_array_equal(residuals, 0.0)
        assert iterations == 0
        assert converged

    def test_iteration_limit(self, panel):
        y, fes, _, _ = panel
        fep = fixed_effect_matrix(fes, method='lsmr_gpu', device='cpu')
        with pytest.warns(RuntimeWarning):
            result = solve_residuals(y, fep, max_iter=1)
        assert not result.converged
        assert result.iterations == 1

    def test_fp32(self, panel, reference):
        y, fes, _, _ = panel
        tier = select_tolerance('lsmr_gpu', use_fp64=False)
        fep = fixed_effect_matrix(fes, method='lsmr_gpu', device='cpu', use_fp64=False)
        result = solve_residuals(y, fep, tol=1e-5)
        np.testing.assert_allclose(result.residuals, reference(y, fes), rtol=tier.rtol, atol=10 * tier.atol)

    def test_unknown_device(self):
        with pytest.raises(ValueError, match="Unknown device"):
            select_device('tpu')


class TestDeviceTiming:

    def test_cuda_device_synchronized_per_reading(self, monkeypatch):
        calls = []
        monkeypatch.setattr(torch.cuda, "synchronize", lambda device=None: calls.append(device))
        timer = Timer(device=torch.device("cuda"))
        timer.start()
        with timer.section("solve"):
            pass
        timer.stop()
        assert len(calls) == 4
        assert all(d.type == "cuda" for d in calls)

    def test_cpu_tensor_device_not_synchronized(self, monkeypatch):
        calls = []
        monkeypatch.setattr(torch.cuda, "synchronize", lambda device=None: calls.append(device))
        timer = Timer(device=torch.device("cpu"))
        timer.start()
        timer.stop()
        assert calls == []

    def test_solver_times_on_backend_device(self, monkeypatch, crossed, rng):
        timers = []

        class RecordingTimer(Timer):
            def __init__(self, device=None):
                super().__init__(device)
                timers.append(self)

        monkeypatch.setattr(solvers_module, "Timer", RecordingTimer)
        fep = fixed_effect_matrix(crossed, method='lsmr_gpu', device='cpu')
        result = solve_residuals(rng.normal(size=10), fep)
        assert timers[-1].device == fep.backend.device
        assert timers[-1].device.type == 'cpu'
        for key in ('total_seconds', 'setup', 'solve', 'unweight'):
            assert key in result.timing


@pytest.mark.gpu
@pytest.mark.skipif(not HAS_GPU, reason="No GPU available")
class TestOnDevice:

    def test_auto_selects_gpu(self):
        assert select_device('auto').is_gpu

    def test_matches_reference(self, panel, reference):
        y, fes, _, _ = panel
        gpu = detect_gpu()
        use_fp64 = gpu.supports_fp64
        tier = select_tolerance('lsmr_gpu', use_fp64=use_fp64)
        fep = fixed_effect_matrix(fes, method='lsmr_gpu', use_fp64=use_fp64)
        result = solve_residuals(y, fep, tol=1e-10 if use_fp64 else 1e-5)
        np.testing.assert_allclose(result.residuals, reference(y, fes), rtol=tier.rtol, atol=10 * tier.atol)
