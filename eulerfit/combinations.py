"""
Set combinations as bit masks.

A combination of N named sets is stored as an integer mask whose bit i is set
when set i participates, so the 2^N - 1 non-empty combinations are the masks
1 .. 2^N - 1 and an array of per-combination values is indexed by mask - 1.
"""

import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from eulerfit.defaults import MAX_SETS

SEPARATOR = "&"


def mask_of(ids: Iterable[int]) -> int:
    mask = 0
    for i in ids:
        mask |= 1 << int(i)
    return mask


def members(mask: int) -> Tuple[int, ...]:
    out = []
    i = 0
    while mask >> i:
        if (mask >> i) & 1:
            out.append(i)
        i += 1
    return tuple(out)


def all_masks(N: int) -> range:
    return range(1, 1 << N)


def combination_names(mask: int, set_names: Sequence[str]) -> Tuple[str, ...]:
    return tuple(set_names[i] for i in members(mask))


def combination_label(mask: int, set_names: Sequence[str], sep: str = SEPARATOR) -> str:
    """E.g. mask 0b101 with names (A, B, C) -> "A&C"."""
    return sep.join(combination_names(mask, set_names))


def _split_key(key) -> List[str]:
    if isinstance(key, str):
        parts = [p.strip() for p in key.split(SEPARATOR)]
    else:
        try:
            parts = [str(p).strip() for p in key]
        except TypeError:
            raise ValueError(f"Cannot interpret combination key {key!r}.") from None
    if not parts or any(not p for p in parts):
        raise ValueError(f"Empty set name in combination {key!r}.")
    return parts


def normalize_combination(key, set_names: Sequence[str]) -> int:
    """Mask of a combination given as "A&B" or as an iterable of set names."""
    index = {name: i for i, name in enumerate(set_names)}
    mask = 0
    for name in _split_key(key):
        if name not in index:
            raise ValueError(f"Unknown set {name!r} in combination {key!r}.")
        mask |= 1 << index[name]
    return mask


def parse_combinations(
    areas: Mapping,
    set_names: Optional[Sequence[str]] = None,
) -> Tuple[Tuple[str, ...], np.ndarray]:
    """
    Validate a combination -> disjoint area mapping.

    Returns the set names and the dense target vector of length 2^N - 1
    (index mask - 1). Combinations missing from `areas` get target 0.
    Raises ValueError for negative or non-finite areas, unknown or duplicate
    names and repeated combinations.
    """
    if not isinstance(areas, Mapping) or len(areas) == 0:
        raise ValueError("areas must be a non-empty mapping of combination -> area.")

    if set_names is None:
        seen: Dict[str, None] = {}
        for key in areas:
            for name in _split_key(key):
                seen.setdefault(name, None)
        names = tuple(seen)
    else:
        names = tuple(str(n) for n in set_names)
        if any(not n or SEPARATOR in n for n in names):
            raise ValueError(f"Set names must be non-empty and must not contain {SEPARATOR!r}.")
        if len(set(names)) != len(names):
            raise ValueError("set_names must be unique.")

    N = len(names)
    if N < 1:
        raise ValueError("At least one set is required.")
    if N > MAX_SETS:
        raise ValueError(f"N>{MAX_SETS} not supported.")

    targets = np.zeros((1 << N) - 1, float)
    given = np.zeros_like(targets, dtype=bool)
    for key, value in areas.items():
        mask = normalize_combination(key, names)
        try:
            v = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Area of {key!r} is not a number: {value!r}.") from None
        if not math.isfinite(v) or v < 0.0:
            raise ValueError(f"Area of {key!r} must be finite and non-negative, got {value!r}.")
        if given[mask - 1]:
            raise ValueError(f"Combination {key!r} given more than once.")
        given[mask - 1] = True
        targets[mask - 1] = v
    return names, targets


def restrict_targets(targets: np.ndarray, N: int, keep: Sequence[int]) -> np.ndarray:
    """Target vector of the sub-problem over the sets `keep` (in that order)."""
    M = len(keep)
    out = np.zeros((1 << M) - 1, float)
    for sub in all_masks(M):
        full = mask_of(keep[j] for j in members(sub))
        out[sub - 1] = targets[full - 1]
    return out


def expand_values(values: np.ndarray, N: int, keep: Sequence[int], fill=0.0) -> List:
    """Inverse of `restrict_targets`: lift sub-problem values to all 2^N - 1 masks."""
    out = [fill] * ((1 << N) - 1)
    for sub in all_masks(len(keep)):
        full = mask_of(keep[j] for j in members(sub))
        out[full - 1] = values[sub - 1]
    return out
