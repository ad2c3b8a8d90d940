"""
Label anchors inside disjoint regions.

A region is seeded with golden-angle (Vogel) spiral points spread over its
smallest participating ellipse. The first seed that falls inside the region
is moved by a Nelder-Mead search maximising the distance to the nearest
ellipse boundary. Every trial point of the simplex is clamped back into the
region, so the search can never report a point outside it.
"""

import logging
import math
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple

import numpy as np

from eulerfit.areas import pairwise_points, region_area
from eulerfit.combinations import all_masks, members
from eulerfit.shapes import Ellipse

logger = logging.getLogger(__name__)

GOLDEN_ANGLE = np.pi * (3.0 - np.sqrt(5.0))

Point = Tuple[float, float]


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

def golden_spiral(n: int, radius: float = 1.0, offset: float = 0.0) -> np.ndarray:
    """Point k of n at radius r*sqrt(k/n) and angle k*pi*(3 - sqrt(5)) + offset."""
    k = np.arange(n, dtype=float)
    r = radius * np.sqrt(k / n)
    theta = k * GOLDEN_ANGLE + offset
    return np.column_stack((r * np.cos(theta), r * np.sin(theta)))


def spiral_in_ellipse(ellipse: Ellipse, n: int, offset: float = 0.0) -> np.ndarray:
    """Unit-disc spiral mapped onto an ellipse (scale, rotate, translate)."""
    unit = golden_spiral(n, 1.0, offset)
    x = unit[:, 0] * ellipse.a
    y = unit[:, 1] * ellipse.b
    c, s = math.cos(ellipse.phi), math.sin(ellipse.phi)
    return np.column_stack((ellipse.h + c * x - s * y, ellipse.k + s * x + c * y))


# ---------------------------------------------------------------------------
# Region membership
# ---------------------------------------------------------------------------

def region_mask(ellipses: Sequence[Ellipse], combination: Iterable[int], points, tol: float = 0.0) -> np.ndarray:
    """
    Which points lie strictly inside every ellipse of `combination` and
    strictly outside every other ellipse.
    """
    pts = np.atleast_2d(np.asarray(points, float))
    ids = set(int(i) for i in combination)
    ok = np.ones(len(pts), dtype=bool)
    for i, e in enumerate(ellipses):
        lv = e.level(pts)
        ok &= (lv < -tol) if i in ids else (lv > tol)
    return ok


def in_region(ellipses: Sequence[Ellipse], combination: Iterable[int], point, tol: float = 0.0) -> bool:
    return bool(region_mask(ellipses, combination, point, tol)[0])


def boundary_distance(ellipses: Sequence[Ellipse], point) -> float:
    """Distance from a point to the nearest ellipse boundary."""
    return min(e.distance_to_boundary(point) for e in ellipses)


# ---------------------------------------------------------------------------
# Constrained simplex search
# ---------------------------------------------------------------------------

def clamp_to_region(
    candidate: np.ndarray,
    anchor: np.ndarray,
    inside: Callable[[np.ndarray], bool],
    steps: int = 30,
) -> np.ndarray:
    """
    Feasible point on the segment anchor -> candidate.

    `anchor` must be feasible. Returns the candidate unchanged when it is
    feasible, otherwise the last feasible point found by bisection along the
    segment.
    """
    candidate = np.asarray(candidate, float)
    anchor = np.asarray(anchor, float)
    if inside(candidate):
        return candidate
    lo, hi = 0.0, 1.0
    delta = candidate - anchor
    for _ in range(steps):
        mid = 0.5 * (lo + hi)
        if inside(anchor + mid * delta):
            lo = mid
        else:
            hi = mid
    return anchor + lo * delta


def constrained_nelder_mead(
    fun: Callable[[np.ndarray], float],
    x0,
    inside: Callable[[np.ndarray], bool],
    step: float,
    max_iterations: int = 200,
    tol: float = 1e-10,
) -> Tuple[np.ndarray, float]:
    """
    Minimise `fun` from a feasible x0 without ever leaving the feasible set.

    Standard reflection / expansion / contraction / shrink moves
    (coefficients 1, 2, 1/2, 1/2); each trial point is clamped toward the
    current best vertex, which is feasible by construction.
    """
    x0 = np.asarray(x0, float)
    dim = x0.size
    simplex = [x0]
    for i in range(dim):
        e = np.zeros(dim)
        e[i] = step
        simplex.append(clamp_to_region(x0 + e, x0, inside))
    values = [fun(p) for p in simplex]

    for _ in range(max_iterations):
        order = np.argsort(values)
        simplex = [simplex[i] for i in order]
        values = [values[i] for i in order]
        best, worst = simplex[0], simplex[-1]
        size = max(np.linalg.norm(p - best) for p in simplex[1:])
        if abs(values[-1] - values[0]) <= tol * (abs(values[0]) + tol) and size <= tol * (1.0 + np.linalg.norm(best)):
            break
        if size == 0.0:
            break

        centroid = np.mean(simplex[:-1], axis=0)
        xr = clamp_to_region(centroid + (centroid - worst), best, inside)
        fr = fun(xr)

        if fr < values[0]:
            xe = clamp_to_region(centroid + 2.0 * (centroid - worst), best, inside)
            fe = fun(xe)
            simplex[-1], values[-1] = (xe, fe) if fe < fr else (xr, fr)
        elif fr < values[-2]:
            simplex[-1], values[-1] = xr, fr
        else:
            if fr < values[-1]:
                xc = clamp_to_region(centroid + 0.5 * (xr - centroid), best, inside)
            else:
                xc = clamp_to_region(centroid + 0.5 * (worst - centroid), best, inside)
            fc = fun(xc)
            if fc < min(fr, values[-1]):
                simplex[-1], values[-1] = xc, fc
            else:
                for i in range(1, len(simplex)):
                    simplex[i] = clamp_to_region(best + 0.5 * (simplex[i] - best), best, inside)
                    values[i] = fun(simplex[i])

    i_best = int(np.argmin(values))
    return simplex[i_best], float(values[i_best])


# ---------------------------------------------------------------------------
# Seeds
# ---------------------------------------------------------------------------

def _first_inside(candidates: np.ndarray, inside_mask: Callable[[np.ndarray], np.ndarray]) -> Optional[np.ndarray]:
    ok = inside_mask(candidates)
    if not ok.any():
        return None
    return candidates[int(np.argmax(ok))]


def _vertex_seed(
    ellipses: Sequence[Ellipse],
    inside_mask: Callable[[np.ndarray], np.ndarray],
    scale: float,
    offset: float,
    tol: float,
) -> Optional[np.ndarray]:
    """Small spirals around every boundary crossing, for sliver regions."""
    crossings = [p for pts in pairwise_points(ellipses, tol).values() for p in pts]
    for radius in (1e-2, 1e-3, 1e-4):
        ring = golden_spiral(64, radius * scale, offset)
        for p in crossings:
            seed = _first_inside(ring + p, inside_mask)
            if seed is not None:
                return seed
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def locate_point(
    ellipses: Sequence[Ellipse],
    combination: Iterable[int],
    n_points: int = 500,
    rng: Optional[np.random.Generator] = None,
    max_iterations: int = 200,
    tol: float = 1e-6,
    area: Optional[float] = None,
) -> Optional[Point]:
    """
    A point strictly inside the disjoint region of `combination`, or None.

    None means the region is empty (zero area) or no seed could be found
    inside it; the caller decides on a fallback. `area` may pass an already
    known region area to skip recomputing it; `rng`, when given, rotates the
    seeding spiral.
    """
    ellipses = list(ellipses)
    ids = sorted(set(int(i) for i in combination))
    if not ids:
        raise ValueError("combination must name at least one ellipse.")
    if area is None:
        area = region_area(ellipses, ids, tol)
    if area <= 0.0:
        return None

    def inside_mask(pts):
        return region_mask(ellipses, ids, pts)

    def inside(p):
        return bool(inside_mask(p)[0])

    offset = float(rng.uniform(0.0, 2.0 * np.pi)) if rng is not None else 0.0
    smallest = min(ids, key=lambda i: ellipses[i].area)

    seed = None
    for n in (n_points, 8 * n_points):
        seed = _first_inside(spiral_in_ellipse(ellipses[smallest], n, offset), inside_mask)
        if seed is not None:
            break
    if seed is None:
        scale = min(min(e.a, e.b) for e in ellipses)
        seed = _vertex_seed(ellipses, inside_mask, scale, offset, tol)
    if seed is None:
        logger.warning("No interior seed found for region %s (area %.3g).", ids, area)
        return None

    step = 0.5 * math.sqrt(area)
    x, _ = constrained_nelder_mead(
        lambda p: -boundary_distance(ellipses, p),
        seed,
        inside,
        step,
        max_iterations=max_iterations,
    )
    return float(x[0]), float(x[1])


def locate_centers(
    ellipses: Sequence[Ellipse],
    fitted: np.ndarray,
    n_points: int = 500,
    rng: Optional[np.random.Generator] = None,
    max_iterations: int = 200,
    tol: float = 1e-6,
) -> Dict[int, Optional[Point]]:
    """Label point (or None) for every combination mask; zero-area regions get None."""
    N = len(ellipses)
    out: Dict[int, Optional[Point]] = {}
    for mask in all_masks(N):
        area = float(fitted[mask - 1])
        if area <= 0.0:
            out[mask] = None
            continue
        out[mask] = locate_point(
            ellipses,
            members(mask),
            n_points=n_points,
            rng=rng,
            max_iterations=max_iterations,
            tol=tol,
            area=area,
        )
    return out
