"""
Tests for backend selection and cross-backend agreement.

Every CPU method must reproduce the dense least-squares residual of the
same weighted problem.
"""

import numpy as np
import pytest

from pyfixedeffects.core.compute.tolerances import select_tolerance
from pyfixedeffects.absorption import (
    FixedEffect,
    fixed_effect_matrix,
    solve_coefficients,
    solve_residuals,
)
from pyfixedeffects.absorption.backends import (
    METHODS,
    CPULSMRBackend,
    CPUCholeskyBackend,
    CPUQRBackend,
    get_backend,
)
from pyfixedeffects.absorption.backends.cpu import equilibrate
from pyfixedeffects.absorption.backends.cpu_direct import identified_columns


CPU_METHODS = ['lsmr', 'lsmr_threads', 'lsmr_parallel', 'qr', 'cholesky']


class TestGetBackend:

    def test_methods_listed(self):
        assert set(CPU_METHODS) < set(METHODS)
        assert 'lsmr_gpu' in METHODS

    @pytest.mark.parametrize("method,cls,name", [
        ('lsmr', CPULSMRBackend, 'cpu_lsmr'),
        ('lsmr_threads', CPULSMRBackend, 'cpu_lsmr_threads'),
        ('lsmr_parallel', CPULSMRBackend, 'cpu_lsmr_parallel'),
        ('qr', CPUQRBackend, 'cpu_qr'),
        ('cholesky', CPUCholeskyBackend, 'cpu_cholesky'),
    ])
    def test_dispatch(self, method, cls, name):
        backend = get_backend(method)
        assert isinstance(backend, cls)
        assert backend.name == name

    def test_pool_size(self):
        assert get_backend('lsmr_threads', n_workers=3).n_workers == 3
        assert get_backend('lsmr_parallel').n_workers >= 1

    def test_invalid_pool_size(self):
        with pytest.raises(ValueError, match="n_workers"):
            CPULSMRBackend(n_workers=0)

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown method"):
            get_backend('gmres')

    def test_option_for_wrong_method(self):
        with pytest.raises(ValueError, match="do not apply"):
            get_backend('qr', n_workers=2)

    def test_unknown_method_through_public_api(self, crossed):
        with pytest.raises(ValueError):
            solve_residuals(np.ones(10), crossed, method='svd')

    @pytest.mark.parametrize("method", CPU_METHODS)
    def test_cpu_backends_have_no_device(self, method):
        assert get_backend(method).device is None


class TestAgreement:

    @pytest.mark.parametrize("method", CPU_METHODS)
    def test_weighted_panel(self, method, panel, reference, rng):
        y, fes, _, _ = panel
        w = rng.uniform(0.2, 3.0, size=y.shape[0])
        result = solve_residuals(y, fes, weights=w, method=method, tol=1e-10)
        assert result.converged
        np.testing.assert_allclose(result.residuals, reference(y, fes, w), atol=1e-6)

    @pytest.mark.parametrize("method", CPU_METHODS)
    def test_matrix_response(self, method, panel, reference, rng):
        y, fes, _, _ = panel
        Y = np.column_stack([y, rng.normal(size=y.shape[0]), np.abs(y)])
        fep = fixed_effect_matrix(fes, method=method, **(
            {'n_workers': 2} if method in ('lsmr_threads', 'lsmr_parallel') else {}
        ))
        result = solve_residuals(Y, fep, tol=1e-10)
        for k in range(Y.shape[1]):
            np.testing.assert_allclose(result.residuals[:, k], reference(Y[:, k], fes), atol=1e-6)

    @pytest.mark.parametrize("method", ['qr', 'cholesky'])
    def test_direct_methods_report_one_iteration(self, method, crossed, rng):
        result = solve_residuals(rng.normal(size=10), crossed, method=method)
        assert result.iterations == 1
        assert result.converged

    @pytest.mark.parametrize("method", ['qr', 'cholesky'])
    def test_direct_methods_exact_on_chain(self, method, chain, reference):
        y, fes = chain
        tier = select_tolerance(method)
        result = solve_residuals(y, fes, method=method)
        np.testing.assert_allclose(
            result.residuals, reference(y, fes), rtol=tier.rtol, atol=tier.atol
        )

    def test_iterative_within_tier(self, panel):
        y, fes, _, _ = panel
        tier = select_tolerance('lsmr')
        qr = solve_residuals(y, fes, method='qr').residuals
        it = solve_residuals(y, fes, method='lsmr').residuals
        np.testing.assert_allclose(it, qr, rtol=tier.rtol, atol=tier.atol)

    def test_interacted_with_zero_weight_group(self, reference, rng):
        """A level whose observations all have zero weight gets a zero column."""
        g = np.repeat(np.arange(4), 6)
        x = rng.normal(size=24)
        fes = [FixedEffect.from_refs(g), FixedEffect.from_refs(g, interaction=x)]
        y = rng.normal(size=24)
        w = np.ones(24)
        w[g == 3] = 0.0
        for method in CPU_METHODS:
            result = solve_residuals(y, fes, weights=w, method=method, tol=1e-10)
            keep = w > 0
            assert np.all(np.isnan(result.residuals[~keep]))
            np.testing.assert_allclose(
                result.residuals[keep], reference(y[keep], [
                    FixedEffect.from_refs(g[keep], n=4),
                    FixedEffect.from_refs(g[keep], n=4, interaction=x[keep]),
                ]),
                atol=1e-6,
            )


class TestEquilibrate:

    def test_unit_column_norms(self, panel):
        _, fes, _, _ = panel
        fep = fixed_effect_matrix(fes)
        op = equilibrate(fep.A)
        norms = np.sqrt(np.asarray(op.A_scaled.multiply(op.A_scaled).sum(axis=0)).ravel())
        np.testing.assert_allclose(norms, 1.0)

    def test_zero_column_keeps_zero_scale(self):
        fe = FixedEffect.from_refs([0, 0, 2], n=3)
        fep = fixed_effect_matrix(fe)
        op = equilibrate(fep.A)
        assert op.scale[1] == 0.0
        np.testing.assert_allclose(op.scale[[0, 2]], [1 / np.sqrt(2), 1.0])

    def test_unused_level_coefficient_is_zero(self):
        fe = FixedEffect.from_refs([0, 0, 2], n=3)
        result = solve_coefficients(np.array([1.0, 3.0, 5.0]), fe)
        np.testing.assert_allclose(result.level_coefficients[0], [2.0, 0.0, 5.0], atol=1e-8)


class TestReducedCholesky:

    def test_crossed_drops_one_level_of_second_effect(self, crossed):
        fep = fixed_effect_matrix(crossed, method='cholesky')
        np.testing.assert_array_equal(identified_columns(fep), [0, 1, 2, 3, 4, 6])

    def test_one_level_dropped_per_component(self, block_diagonal):
        fep = fixed_effect_matrix(block_diagonal, method='cholesky')
        np.testing.assert_array_equal(identified_columns(fep), [0, 1, 2, 3, 5, 7])

    def test_unused_level_dropped(self):
        fep = fixed_effect_matrix(FixedEffect.from_refs([0, 0, 2], n=3), method='cholesky')
        np.testing.assert_array_equal(identified_columns(fep), [0, 2])

    def test_zero_weight_rows_do_not_link(self, crossed):
        w = np.ones(10)
        w[8:] = 0.0
        fep = fixed_effect_matrix(crossed, w, method='cholesky')
        np.testing.assert_array_equal(identified_columns(fep), [0, 1, 2, 3, 6])

    def test_unused_level_coefficient_is_zero(self):
        fe = FixedEffect.from_refs([0, 0, 2], n=3)
        result = solve_coefficients(np.array([1.0, 3.0, 5.0]), fe, method='cholesky')
        np.testing.assert_allclose(result.level_coefficients[0], [2.0, 0.0, 5.0], atol=1e-12)

    def test_residual_orthogonal_to_design(self, chain):
        y, fes = chain
        fep = fixed_effect_matrix(fes, method='cholesky')
        r = solve_residuals(y, fep).residuals
        np.testing.assert_allclose(fep.A.T @ r, 0.0, atol=1e-6)
