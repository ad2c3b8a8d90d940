"""
Initial layout: circle centres from pairwise relations only.

Radii come from the total area of each set. Every pair of sets gets a target
centre distance: touching for disjoint sets, concentric-enough for nested
sets, and the lens distance matching their joint area otherwise. Centres are
then fitted to those distances with BFGS on

    sum over pairs (d_ij^2 - D_ij^2)^2,

where disjoint pairs that are already far enough apart and nested pairs
that are already close enough contribute nothing.
"""

import logging
import math
from typing import NamedTuple, Optional, Tuple

import numpy as np
from scipy.optimize import brentq, minimize

from eulerfit.areas import circle_overlap
from eulerfit.combinations import all_masks, members
from eulerfit.shapes import Ellipse

logger = logging.getLogger(__name__)


class InitialLayout(NamedTuple):
    centers: np.ndarray
    radii: np.ndarray
    loss: float

    def circles(self):
        return [Ellipse.circle(x, y, r) for (x, y), r in zip(self.centers, self.radii)]


# ---------------------------------------------------------------------------
# Pairwise relations from the target data
# ---------------------------------------------------------------------------

def set_areas(targets: np.ndarray, N: int) -> np.ndarray:
    """Total area of every set: the sum of the disjoint areas it takes part in."""
    out = np.zeros(N, float)
    for mask in all_masks(N):
        for i in members(mask):
            out[i] += targets[mask - 1]
    return out


def pair_relations(
    targets: np.ndarray,
    N: int,
    tol: float = 1e-10,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    (disjoint, subset, overlaps) matrices for every pair of sets.

    overlaps[i, j] is the target area of the intersection of sets i and j.
    A pair is disjoint when that area is zero, and a subset pair when one set
    has no area outside the other. `tol` is relative to the total area.
    """
    overlaps = np.zeros((N, N), float)
    outside = np.zeros((N, N), float)  # outside[i, j]: area of i not in j
    for mask in all_masks(N):
        value = targets[mask - 1]
        ids = members(mask)
        for i in ids:
            for j in range(N):
                if j == i:
                    continue
                if (mask >> j) & 1:
                    overlaps[i, j] += value
                else:
                    outside[i, j] += value

    eps = tol * max(float(np.sum(targets)), 1e-300)
    disjoint = overlaps <= eps
    subset = ~disjoint & ((outside <= eps) | (outside.T <= eps))
    np.fill_diagonal(disjoint, False)
    np.fill_diagonal(subset, False)
    return disjoint, subset, overlaps


def separate_two_discs(r1: float, r2: float, overlap: float, tol: float = 1e-10) -> float:
    """
    Centre distance of two circles whose lens has area `overlap`.

    Solved with Brent's method on [|r1 - r2|, r1 + r2]; 0 overlap gives
    touching circles, a full overlap gives internally touching ones.
    """
    lo, hi = abs(r1 - r2), r1 + r2
    full = math.pi * min(r1, r2) ** 2
    if overlap <= 0.0:
        return hi
    if overlap >= full * (1.0 - tol):
        return lo
    return brentq(lambda d: circle_overlap(r1, r2, d) - overlap, lo, hi, xtol=tol * max(hi, 1.0))


# ---------------------------------------------------------------------------
# Loss
# ---------------------------------------------------------------------------

def _active_differences(z: np.ndarray, D2: np.ndarray, disjoint: np.ndarray, subset: np.ndarray):
    N = z.size // 2
    x, y = z[:N], z[N:]
    dx = x[:, None] - x[None, :]
    dy = y[:, None] - y[None, :]
    d2 = dx * dx + dy * dy
    satisfied = (disjoint & (d2 >= D2)) | (subset & (d2 <= D2))
    diff = np.where(satisfied, 0.0, d2 - D2)
    np.fill_diagonal(diff, 0.0)
    return diff, dx, dy


def initial_loss(z: np.ndarray, D2: np.ndarray, disjoint: np.ndarray, subset: np.ndarray) -> float:
    """z = (x_0 .. x_{N-1}, y_0 .. y_{N-1})."""
    diff, _, _ = _active_differences(z, D2, disjoint, subset)
    return 0.5 * float(np.sum(diff * diff))


def initial_gradient(z: np.ndarray, D2: np.ndarray, disjoint: np.ndarray, subset: np.ndarray) -> np.ndarray:
    diff, dx, dy = _active_differences(z, D2, disjoint, subset)
    gx = 4.0 * np.sum(diff * dx, axis=1)
    gy = 4.0 * np.sum(diff * dy, axis=1)
    return np.concatenate((gx, gy))


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------

def target_distances(targets: np.ndarray, N: int, tol: float = 1e-10):
    """Radii, squared target distances and the relation matrices."""
    radii = np.sqrt(set_areas(targets, N) / np.pi)
    disjoint, subset, overlaps = pair_relations(targets, N, tol)
    D = np.zeros((N, N), float)
    for i in range(N):
        for j in range(i + 1, N):
            if disjoint[i, j]:
                d = radii[i] + radii[j]
            elif subset[i, j]:
                d = abs(radii[i] - radii[j])
            else:
                d = separate_two_discs(radii[i], radii[j], overlaps[i, j], tol)
            D[i, j] = D[j, i] = d
    return radii, D * D, disjoint, subset


def initial_layout(
    targets: np.ndarray,
    N: int,
    rng: Optional[np.random.Generator] = None,
    start: Optional[np.ndarray] = None,
    restarts: int = 10,
    max_iterations: int = 200,
    tol: float = 1e-10,
) -> InitialLayout:
    """
    Circle centres approximating the pairwise target distances.

    Parameters
    ----------
    targets  : disjoint target areas indexed by mask - 1
    N        : number of sets
    rng      : generator for random starting placements (required unless
               `start` is given)
    start    : optional (N, 2) starting centres; disables random restarts
    restarts : number of random starts, the lowest loss wins
    """
    targets = np.asarray(targets, float)
    if targets.shape != ((1 << N) - 1,):
        raise ValueError(f"targets must have length {(1 << N) - 1} for N={N}, got {targets.shape}.")

    radii, D2, disjoint, subset = target_distances(targets, N, tol)
    if N == 1:
        return InitialLayout(np.zeros((1, 2)), radii, 0.0)

    if start is not None:
        start = np.asarray(start, float)
        if start.shape != (N, 2):
            raise ValueError(f"start must have shape {(N, 2)}, got {start.shape}.")
        starts = [np.concatenate((start[:, 0], start[:, 1]))]
    else:
        if rng is None:
            raise ValueError("initial_layout needs an rng when no start is given.")
        spread = math.sqrt(float(np.sum(np.pi * radii ** 2)))
        starts = [rng.uniform(0.0, spread, size=2 * N) for _ in range(max(1, restarts))]

    best = None
    for z0 in starts:
        res = minimize(
            initial_loss,
            z0,
            args=(D2, disjoint, subset),
            jac=initial_gradient,
            method="BFGS",
            options={"maxiter": max_iterations, "gtol": 1e-12},
        )
        logger.debug("initial layout start: loss=%.3g nit=%d (%s)", res.fun, res.nit, res.message)
        if best is None or res.fun < best.fun:
            best = res

    z = best.x
    centers = np.column_stack((z[:N], z[N:]))
    return InitialLayout(centers, radii, float(best.fun))
