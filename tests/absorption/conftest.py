"""
Shared fixtures for absorption tests.

Provides small panels with known structure and a dense least-squares
reference to compare backends against.
"""

import numpy as np
import pytest

from pyfixedeffects.absorption import FixedEffect


def dense_design(fes, weights=None):
    """Dense [D_1 ... D_k] and sqrt(weights) for a list of FixedEffects."""
    n = fes[0].n_obs
    blocks = []
    for fe in fes:
        D = np.zeros((n, fe.n))
        D[np.arange(n), fe.refs] = 1.0 if fe.interaction is None else fe.interaction
        blocks.append(D)
    sqrtw = np.ones(n) if weights is None else np.sqrt(np.asarray(weights, dtype=float))
    return np.hstack(blocks), sqrtw


def reference_residuals(y, fes, weights=None):
    """Weighted least-squares residual y - D x via numpy's SVD lstsq."""
    D, sqrtw = dense_design(fes, weights)
    x, *_ = np.linalg.lstsq(sqrtw[:, None] * D, sqrtw * y, rcond=None)
    return y - D @ x


@pytest.fixture
def reference():
    """Dense weighted least-squares residuals, for comparing backends."""
    return reference_residuals


@pytest.fixture
def crossed():
    """The classic 5 x 2 crossed design: p1 = 0,0,1,1,...; p2 = 0,1,0,1,..."""
    p1 = np.repeat(np.arange(5), 2)
    p2 = np.tile(np.arange(2), 5)
    return [FixedEffect.from_labels(p1), FixedEffect.from_labels(p2)]


@pytest.fixture
def block_diagonal():
    """Two disconnected blocks of four observations each."""
    fe1 = FixedEffect.from_refs([0, 0, 1, 1, 2, 2, 3, 3], n=4)
    fe2 = FixedEffect.from_refs([0, 1, 0, 1, 2, 3, 2, 3], n=4)
    return [fe1, fe2]


@pytest.fixture
def panel(rng):
    """Unbalanced firm x year panel with a known data-generating process.

    Returns:
        (y, fes, firm_effect, year_effect) with y = firm_effect[firm]
        + year_effect[year] + noise.
    """
    n_firms, n_years, n = 30, 8, 400
    firm = rng.integers(0, n_firms, size=n)
    year = rng.integers(0, n_years, size=n)
    # every firm and year observed at least once
    firm[:n_firms] = np.arange(n_firms)
    year[:n_years] = np.arange(n_years)
    firm_effect = rng.normal(0, 2, n_firms)
    year_effect = rng.normal(0, 1, n_years)
    y = firm_effect[firm] + year_effect[year] + rng.normal(0, 0.5, n)
    fes = [FixedEffect.from_refs(firm, n=n_firms), FixedEffect.from_refs(year, n=n_years)]
    return y, fes, firm_effect, year_effect


@pytest.fixture
def chain(rng):
    """Poorly connected two-way design: a 200-level chain plus one heavy level.

    Level i of the first effect meets levels i - 1 and i of the second
    through single observations; level 0 of both is shared by 20000 more.
    """
    n_levels, n_heavy = 200, 20000
    levels = np.arange(n_levels)
    first = np.concatenate([levels, levels[1:], np.zeros(n_heavy, dtype=np.int64)])
    second = np.concatenate([levels, levels[:-1], np.zeros(n_heavy, dtype=np.int64)])
    y = rng.normal(size=first.shape[0])
    fes = [FixedEffect.from_refs(first, n=n_levels), FixedEffect.from_refs(second, n=n_levels)]
    return y, fes
