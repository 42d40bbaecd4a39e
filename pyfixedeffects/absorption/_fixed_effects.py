"""
Fixed effect descriptors and the expansion of per-level coefficients.

A FixedEffect maps every observation to one level of a categorical
variable, optionally multiplied by a continuous interaction variable:

    contribution_i = coef[refs[i]] * interaction[i]      (interacted)
    contribution_i = coef[refs[i]]                       (pure)

Level codes are 0-based. A reference of -1 marks a missing label; such a
fixed effect can be built but is rejected by every solve.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pyfixedeffects.core.exceptions import DimensionError, ValidationError

MISSING_REF = -1


@dataclass(frozen=True, eq=False)
class FixedEffect:
    """A categorical grouping variable over observations.

    Attributes:
        refs: Level code of each observation, shape (n_obs,), values in
            [0, n) or MISSING_REF.
        n: Number of levels.
        interaction: Continuous weight per observation (n_obs,), or None
            for a pure fixed effect (plain dummy variables).
        levels: Original label of each level, when built from labels.

    Construction:
        FixedEffect.from_labels(firm_ids)                  # pure
        FixedEffect.from_labels(firm_ids, year)            # one level per (firm, year)
        FixedEffect.from_labels(firm_ids, interaction=x)   # firm-specific slope on x
        FixedEffect.from_refs(codes, n=10)                 # explicit 0-based codes

    The bare constructor takes the raw fields and validates them: refs are
    coerced to int64 codes and must lie in [-1, n), the interaction must
    have one value per observation.
    """
    refs: NDArray[np.int64]
    n: int
    interaction: NDArray[np.float64] | None = None
    levels: tuple[Any, ...] | None = None

    def __post_init__(self):
        codes = _as_codes(self.refs)
        try:
            n = operator.index(self.n)
        except TypeError:
            raise ValidationError(
                f"n: expected an integer number of levels, got {type(self.n).__name__}; "
                "use FixedEffect.from_labels to factorize label arrays"
            ) from None
        if n < 0:
            raise ValidationError(f"n: expected a non-negative number of levels, got {n}")
        bad = np.flatnonzero((codes < MISSING_REF) | (codes >= n))
        if bad.size:
            raise DimensionError(
                f"refs: {bad.size} code(s) outside [0, {n}), first "
                f"{int(codes[bad[0]])} at index {int(bad[0])}"
            )
        object.__setattr__(self, "refs", codes)
        object.__setattr__(self, "n", n)
        object.__setattr__(self, "interaction", _as_interaction(self.interaction, codes.shape[0]))

    @classmethod
    def from_labels(
        cls,
        *labels: ArrayLike,
        interaction: ArrayLike | None = None,
    ) -> FixedEffect:
        """Factorize one or more label arrays into a FixedEffect.

        Several label arrays are grouped jointly: each distinct combination
        of labels is one level. None, NaN and NaT labels become missing
        references; an observation is missing if any of its labels is.

        Raises:
            ValidationError: If no labels are given.
            DimensionError: If label arrays or interaction differ in length.
        """
        if not labels:
            raise ValidationError("FixedEffect.from_labels: at least one label array required")

        arrays = [np.asarray(lab).reshape(-1) for lab in labels]
        n_obs = arrays[0].shape[0]
        for k, arr in enumerate(arrays[1:], start=1):
            if arr.shape[0] != n_obs:
                raise DimensionError(
                    f"labels[{k}] has {arr.shape[0]} elements, expected {n_obs}"
                )

        factorized = [_factorize(arr) for arr in arrays]
        if len(factorized) == 1:
            refs, levels = factorized[0]
        else:
            refs, levels = _group_jointly(factorized, n_obs)

        return cls(
            refs=refs,
            n=len(levels),
            interaction=_as_interaction(interaction, n_obs),
            levels=levels,
        )

    @classmethod
    def from_refs(
        cls,
        refs: ArrayLike,
        n: int | None = None,
        interaction: ArrayLike | None = None,
    ) -> FixedEffect:
        """Build a FixedEffect from explicit 0-based level codes.

        Args:
            refs: Integer codes in [0, n); -1 marks a missing reference.
            n: Number of levels. Defaults to max(refs) + 1.
            interaction: Optional continuous interaction variable.

        Raises:
            ValidationError: If refs are not integer-valued.
            DimensionError: If a code is outside [-1, n).
        """
        codes = _as_codes(refs)
        if n is None:
            n = int(codes.max()) + 1 if codes.size else 0
        return cls(refs=codes, n=n, interaction=interaction)

    @property
    def n_obs(self) -> int:
        return int(self.refs.shape[0])

    @property
    def is_pure(self) -> bool:
        """True if this fixed effect is not interacted with a continuous variable."""
        return self.interaction is None

    @property
    def has_missing(self) -> bool:
        """True if any reference or interaction value is missing."""
        if np.any(self.refs == MISSING_REF):
            return True
        return self.interaction is not None and not np.all(np.isfinite(self.interaction))

    def __repr__(self) -> str:
        kind = "pure" if self.is_pure else "interacted"
        return f"FixedEffect(n_obs={self.n_obs}, n={self.n}, {kind})"


def expand_coefficients(
    coefficients: Sequence[NDArray[np.float64]],
    fes: Sequence[FixedEffect],
) -> list[NDArray[np.float64]]:
    """Broadcast per-level coefficients to per-observation vectors.

    Returns one vector per fixed effect with entry i equal to
    ``coefficients[j][fes[j].refs[i]]``. The interaction is not applied.

    Raises:
        DimensionError: If the number of coefficient vectors does not match
            the fixed effects, a vector has the wrong length, or a
            reference falls outside [0, n).
    """
    if len(coefficients) != len(fes):
        raise DimensionError(
            f"Got {len(coefficients)} coefficient vectors for {len(fes)} fixed effects"
        )
    expanded = []
    for j, (coef, fe) in enumerate(zip(coefficients, fes)):
        if coef.shape[0] != fe.n:
            raise DimensionError(
                f"coefficients[{j}] has {coef.shape[0]} entries, fixed effect has {fe.n} levels"
            )
        if fe.n_obs and (fe.refs.min() < 0 or fe.refs.max() >= fe.n):
            raise DimensionError(f"fes[{j}]: reference outside [0, {fe.n})")
        expanded.append(coef[fe.refs])
    return expanded


def _is_missing(arr: NDArray) -> NDArray[np.bool_]:
    """Element-wise missing-label mask for numeric, datetime and object arrays."""
    if arr.dtype.kind == 'f' or arr.dtype.kind == 'c':
        return ~np.isfinite(arr)
    if arr.dtype.kind in ('M', 'm'):
        return np.isnat(arr)
    if arr.dtype.kind != 'O':
        return np.zeros(arr.shape[0], dtype=bool)

    mask = np.zeros(arr.shape[0], dtype=bool)
    for i, value in enumerate(arr):
        if value is None:
            mask[i] = True
        elif isinstance(value, (float, np.floating)):
            mask[i] = not np.isfinite(value)
        elif isinstance(value, (np.datetime64, np.timedelta64)):
            mask[i] = bool(np.isnat(value))
    return mask


def _factorize(arr: NDArray) -> tuple[NDArray[np.int64], tuple[Any, ...]]:
    """Map labels to 0-based codes (sorted label order), -1 for missing."""
    missing = _is_missing(arr)
    refs = np.full(arr.shape[0], MISSING_REF, dtype=np.int64)
    present = arr[~missing]
    try:
        uniques, inverse = np.unique(present, return_inverse=True)
    except TypeError:
        # unorderable mixed objects: first-appearance order
        lookup: dict[Any, int] = {}
        inverse = np.array([lookup.setdefault(v, len(lookup)) for v in present], dtype=np.int64)
        uniques = np.empty(len(lookup), dtype=object)
        for value, code in lookup.items():
            uniques[code] = value
    refs[~missing] = inverse.reshape(-1)
    return refs, tuple(uniques.tolist())


def _group_jointly(
    factorized: list[tuple[NDArray[np.int64], tuple[Any, ...]]],
    n_obs: int,
) -> tuple[NDArray[np.int64], tuple[Any, ...]]:
    """Combine several code arrays into one code per distinct combination."""
    codes = np.column_stack([refs for refs, _ in factorized])
    missing = np.any(codes == MISSING_REF, axis=1)
    refs = np.full(n_obs, MISSING_REF, dtype=np.int64)
    if np.all(missing):
        return refs, ()
    combos, inverse = np.unique(codes[~missing], axis=0, return_inverse=True)
    refs[~missing] = inverse.reshape(-1)
    levels = tuple(
        tuple(factorized[k][1][c] for k, c in enumerate(row))
        for row in combos
    )
    return refs, levels


def _as_interaction(interaction: ArrayLike | None, n_obs: int) -> NDArray[np.float64] | None:
    if interaction is None:
        return None
    values = np.asarray(interaction, dtype=np.float64).reshape(-1)
    if values.shape[0] != n_obs:
        raise DimensionError(
            f"interaction has {values.shape[0]} elements, expected {n_obs}"
        )
    return values


def _as_codes(refs: ArrayLike) -> NDArray[np.int64]:
    """Coerce integer-valued level codes to a 1D int64 array."""
    raw = np.asarray(refs).reshape(-1)
    if raw.dtype.kind == 'f':
        if not np.all(np.isfinite(raw)) or np.any(raw != np.round(raw)):
            raise ValidationError("refs: expected integer codes, got non-integer values")
    elif raw.dtype.kind not in ('i', 'u', 'b'):
        raise ValidationError(f"refs: expected integer codes, got dtype {raw.dtype}")
    return raw.astype(np.int64)
