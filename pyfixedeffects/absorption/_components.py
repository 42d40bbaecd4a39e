"""
Identification of fixed-effect coefficients.

With two or more pure fixed effects the least-squares coefficients are
only identified up to an additive constant per connected component:
adding c to every level of one fixed effect and subtracting c from every
level of another leaves all fitted values unchanged, as long as both
sets of levels are linked through shared observations.

This module finds those components and picks one representative:

    - every pure fixed effect except the first has zero mean over its
      levels within each component
    - the removed means are added to the first pure fixed effect
      (the reference) within the same component

Components are found by breadth-first search over the bipartite graph
observations <-> (fixed effect, level). Interacted fixed effects do not
take part in either step.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from pyfixedeffects.absorption._fixed_effects import FixedEffect


@dataclass(frozen=True, eq=False)
class Component:
    """One connected component of co-occurring levels.

    Attributes:
        observations: Sorted indices of the observations in the component.
        levels: One sorted array per pure fixed effect (in the order the
            fixed effects were given) with the levels present here.
    """
    observations: NDArray[np.int64]
    levels: tuple[NDArray[np.int64], ...]

    @property
    def n_obs(self) -> int:
        return int(self.observations.shape[0])


def pure_indices(fes: Sequence[FixedEffect]) -> list[int]:
    """Positions of the fixed effects that carry no interaction."""
    return [j for j, fe in enumerate(fes) if fe.is_pure]


def level_index(fe: FixedEffect) -> list[NDArray[np.int64]]:
    """For each level, the observations that reference it (ascending)."""
    order = np.argsort(fe.refs, kind='stable')
    counts = np.bincount(fe.refs, minlength=fe.n)
    return np.split(order, np.cumsum(counts)[:-1])


def connected_components(fes: Sequence[FixedEffect]) -> list[Component]:
    """Partition observations and levels of the given fixed effects.

    Components are returned in order of their smallest observation.
    Levels that no observation uses belong to no component.
    """
    if not fes:
        return []

    n_obs = fes[0].n_obs
    refs = np.vstack([fe.refs for fe in fes])
    where = [level_index(fe) for fe in fes]
    seen = [np.zeros(fe.n, dtype=bool) for fe in fes]
    visited = np.zeros(n_obs, dtype=bool)

    components = []
    for start in range(n_obs):
        if visited[start]:
            continue
        observations = []
        levels: list[list[int]] = [[] for _ in fes]
        visited[start] = True
        frontier = deque([start])
        while frontier:
            obs = frontier.popleft()
            observations.append(obs)
            for j in range(len(fes)):
                level = refs[j, obs]
                if seen[j][level]:
                    continue
                seen[j][level] = True
                levels[j].append(level)
                neighbours = where[j][level]
                fresh = neighbours[~visited[neighbours]]
                visited[fresh] = True
                frontier.extend(fresh.tolist())

        components.append(Component(
            observations=np.sort(np.asarray(observations, dtype=np.int64)),
            levels=tuple(np.sort(np.asarray(lv, dtype=np.int64)) for lv in levels),
        ))
    return components


def rescale(
    coefficients: list[NDArray[np.float64]],
    eligible: Sequence[int],
    components: Sequence[Component],
) -> list[NDArray[np.float64]]:
    """Apply the canonical normalization in place.

    Args:
        coefficients: Per-level coefficients for every fixed effect.
        eligible: Positions (into coefficients) of the pure fixed effects;
            eligible[0] is the reference.
        components: Output of connected_components over the eligible
            fixed effects, so that component.levels[k] refers to
            coefficients[eligible[k]].

    Returns:
        The same list, modified in place.
    """
    reference = eligible[0]
    for component in components:
        adjustment = 0.0
        for k in reversed(range(1, len(eligible))):
            coef = coefficients[eligible[k]]
            lv = component.levels[k]
            mean = float(coef[lv].mean())
            coef[lv] -= mean
            adjustment += mean
        coefficients[reference][component.levels[0]] += adjustment
    return coefficients


def normalize(
    coefficients: list[NDArray[np.float64]],
    fes: Sequence[FixedEffect],
) -> list[Component]:
    """Find components over the pure fixed effects and rescale in place.

    Returns the components found; an empty list when fewer than two
    fixed effects are pure, in which case nothing is changed.
    """
    eligible = pure_indices(fes)
    if len(eligible) < 2:
        return []
    components = connected_components([fes[j] for j in eligible])
    rescale(coefficients, eligible, components)
    return components
