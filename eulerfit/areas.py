"""
Exact areas of boolean combinations of ellipses.

The intersection of any number of ellipses is convex, so its area is the
polygon spanned by its vertices (pairwise boundary crossings lying inside
every other ellipse) plus one elliptical segment per polygon edge. Disjoint
region areas ("exactly these sets and no others") follow from the
intersection areas by inclusion-exclusion over supersets.
"""

import itertools
import math
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from eulerfit.combinations import all_masks, mask_of, members
from eulerfit.conics import intersect_ellipses
from eulerfit.shapes import TWOPI, Ellipse

PointMap = Dict[Tuple[int, int], np.ndarray]


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def circle_overlap(r1: float, r2: float, d: float) -> float:
    """Closed-form lens area of two circles with centre distance d."""
    if d >= r1 + r2:
        return 0.0
    if d <= abs(r1 - r2):
        return math.pi * min(r1, r2) ** 2

    def clamp(x: float) -> float:
        return max(-1.0, min(1.0, x))

    a1 = math.acos(clamp((d * d + r1 * r1 - r2 * r2) / (2.0 * d * r1)))
    a2 = math.acos(clamp((d * d + r2 * r2 - r1 * r1) / (2.0 * d * r2)))
    kite = (-d + r1 + r2) * (d + r1 - r2) * (d - r1 + r2) * (d + r1 + r2)
    return r1 * r1 * a1 + r2 * r2 * a2 - 0.5 * math.sqrt(max(0.0, kite))


def polygon_area(points: np.ndarray) -> float:
    """Signed shoelace area; positive for counter-clockwise vertices."""
    p = np.asarray(points, float)
    if len(p) < 3:
        return 0.0
    x, y = p[:, 0], p[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


def ellipse_segment(ellipse: Ellipse, p0, p1) -> float:
    """
    Area between the chord p0 -> p1 and the counter-clockwise arc of the
    ellipse from p0 to p1.

    In the ellipse's axis frame scaled to the unit circle the segment is
    (dθ - sin dθ) / 2; the affine map back multiplies areas by a * b.
    """
    u = ellipse.to_local(np.array([p0, p1], float))
    t0 = math.atan2(u[0, 1] / ellipse.b, u[0, 0] / ellipse.a)
    t1 = math.atan2(u[1, 1] / ellipse.b, u[1, 0] / ellipse.a)
    dt = (t1 - t0) % TWOPI
    return 0.5 * ellipse.a * ellipse.b * (dt - math.sin(dt))


# ---------------------------------------------------------------------------
# Intersections
# ---------------------------------------------------------------------------

def pairwise_points(
    ellipses: Sequence[Ellipse],
    tol: float = 1e-6,
    ids: Optional[Iterable[int]] = None,
) -> PointMap:
    """Boundary crossings of every pair (i < j) among `ids` (default: all)."""
    idx = sorted(range(len(ellipses)) if ids is None else set(ids))
    out: PointMap = {}
    for i, j in itertools.combinations(idx, 2):
        ei, ej = ellipses[i], ellipses[j]
        reach = max(ei.a, ei.b) + max(ej.a, ej.b)
        if math.hypot(ei.h - ej.h, ei.k - ej.k) >= reach:
            out[(i, j)] = np.empty((0, 2))
        else:
            out[(i, j)] = intersect_ellipses(ei, ej, tol)
    return out


def _is_inside(inner: Ellipse, outer: Ellipse, n_crossings: int, tol: float) -> bool:
    """inner lies within outer, given how many times their boundaries cross."""
    if n_crossings >= 2:
        return False
    probes = inner.boundary_point(np.arange(8) * (TWOPI / 8))
    return int(np.count_nonzero(outer.level(probes) <= tol)) >= 6


def _nested_area(
    ellipses: Sequence[Ellipse],
    ids: Sequence[int],
    points: PointMap,
    tol: float,
) -> float:
    smallest = min(ids, key=lambda i: ellipses[i].area)
    for m in ids:
        if m == smallest:
            continue
        key = (min(m, smallest), max(m, smallest))
        if not _is_inside(ellipses[smallest], ellipses[m], len(points[key]), tol):
            return 0.0
    return ellipses[smallest].area


def intersection_area(
    ellipses: Sequence[Ellipse],
    ids: Iterable[int],
    points: Optional[PointMap] = None,
    tol: float = 1e-6,
) -> float:
    """
    Area of the intersection of the ellipses `ids`.

    `points` may carry precomputed pairwise crossings (see `pairwise_points`)
    so one loss evaluation solves each pair only once.
    """
    ids = sorted(set(int(i) for i in ids))
    if not ids:
        raise ValueError("intersection_area needs at least one ellipse.")
    if len(ids) == 1:
        return ellipses[ids[0]].area
    if points is None:
        points = pairwise_points(ellipses, tol, ids)

    merge = math.sqrt(tol) * min(min(ellipses[i].a, ellipses[i].b) for i in ids)
    verts: List[np.ndarray] = []
    parents: List[Set[int]] = []
    for i, j in itertools.combinations(ids, 2):
        others = [m for m in ids if m != i and m != j]
        for p in points[(i, j)]:
            if any(ellipses[m].level(p) > tol for m in others):
                continue
            for v, par in zip(verts, parents):
                if np.linalg.norm(v - p) <= merge:
                    par.update((i, j))
                    break
            else:
                verts.append(np.asarray(p, float))
                parents.append({i, j})

    if len(verts) < 2:
        return _nested_area(ellipses, ids, points, tol)

    V = np.array(verts)
    centroid = V.mean(axis=0)
    order = np.argsort(np.arctan2(V[:, 1] - centroid[1], V[:, 0] - centroid[0]))
    V = V[order]
    parents = [parents[o] for o in order]

    area = polygon_area(V)
    n_v = len(V)
    for s in range(n_v):
        t = (s + 1) % n_v
        common = parents[s] & parents[t]
        if not common:
            continue
        # the innermost arc bounds the region; other common parents bulge out
        area += min(ellipse_segment(ellipses[m], V[s], V[t]) for m in common)
    return max(area, 0.0)


# ---------------------------------------------------------------------------
# Disjoint regions
# ---------------------------------------------------------------------------

def _pair_areas(
    ellipses: Sequence[Ellipse],
    points: PointMap,
    tol: float,
) -> Dict[Tuple[int, int], float]:
    return {pair: intersection_area(ellipses, pair, points, tol) for pair in points}


def intersection_areas(ellipses: Sequence[Ellipse], tol: float = 1e-6) -> np.ndarray:
    """
    Intersection area of every combination, indexed by mask (entry 0 unused).
    Combinations containing a non-overlapping pair are 0 without solving.
    """
    N = len(ellipses)
    points = pairwise_points(ellipses, tol)
    pair_area = _pair_areas(ellipses, points, tol)

    inter = np.zeros(1 << N, float)
    for mask in all_masks(N):
        ids = members(mask)
        if len(ids) == 1:
            inter[mask] = ellipses[ids[0]].area
            continue
        if len(ids) == 2:
            inter[mask] = pair_area[ids]
            continue
        last = ids[-1]
        if inter[mask ^ (1 << last)] <= 0.0:
            continue
        if any(pair_area[(i, last)] <= 0.0 for i in ids[:-1]):
            continue
        inter[mask] = intersection_area(ellipses, ids, points, tol)
    return inter


def _superset_moebius(inter: np.ndarray, N: int) -> np.ndarray:
    """d(S) = sum over T ⊇ S of (-1)^{|T|-|S|} I(T)."""
    d = inter.copy()
    full = 1 << N
    for bit in range(N):
        b = 1 << bit
        for mask in range(full):
            if not mask & b:
                d[mask] -= d[mask | b]
    return d


def disjoint_areas(ellipses: Sequence[Ellipse], tol: float = 1e-6) -> np.ndarray:
    """
    Area of every disjoint region, as an array indexed by mask - 1.

    Entry mask - 1 is the area inside exactly the ellipses of `mask`.
    """
    N = len(ellipses)
    if N == 0:
        return np.empty(0)
    d = _superset_moebius(intersection_areas(ellipses, tol), N)
    return np.maximum(d[1:], 0.0)


def region_area(ellipses: Sequence[Ellipse], combination: Iterable[int], tol: float = 1e-6) -> float:
    """
    Disjoint area of one combination: inside every ellipse of `combination`
    and outside all others.
    """
    N = len(ellipses)
    ids = set(int(i) for i in combination)
    if not ids:
        raise ValueError("combination must name at least one ellipse.")
    if not ids <= set(range(N)):
        raise ValueError(f"combination {sorted(ids)} refers to missing ellipses (N={N}).")
    base = mask_of(ids)
    rest = [i for i in range(N) if i not in ids]
    points = pairwise_points(ellipses, tol)

    total = 0.0
    for r in range(len(rest) + 1):
        sign = -1.0 if r % 2 else 1.0
        for extra in itertools.combinations(rest, r):
            total += sign * intersection_area(ellipses, members(base | mask_of(extra)), points, tol)
    return max(total, 0.0)


def union_area(ellipses: Sequence[Ellipse], tol: float = 1e-6) -> float:
    """Area covered by at least one ellipse."""
    N = len(ellipses)
    if N == 0:
        return 0.0
    inter = intersection_areas(ellipses, tol)
    total = 0.0
    for mask in all_masks(N):
        total += (-1.0 if len(members(mask)) % 2 == 0 else 1.0) * inter[mask]
    return total
