"""
Intersection of two conics in matrix form.

A conic is a symmetric 3x3 matrix C with p^T C p = 0 for the homogeneous
points p = (x, y, 1) on the curve. The intersection points of conics A and B
are found projectively:

1. The pencil det(A + t B) = 0 is a cubic in t. Every real root gives a
   degenerate member A + t B of the pencil, i.e. a pair of lines through all
   four (possibly complex) intersection points.
2. The degenerate conic is split into its two lines through its adjugate.
3. Each line is intersected with B, a quadratic per line.

Candidates are polished, verified on both conics and merged, so tangencies
come out as a single point. Numerical breakdown never raises; it yields fewer
(or no) points, and "no intersection" is a normal answer.
"""

import logging
import math
from typing import List, Optional

import numpy as np

from eulerfit.shapes import Ellipse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Matrix helpers
# ---------------------------------------------------------------------------

def conic_matrix(ellipse: Ellipse) -> np.ndarray:
    """
    Matrix form of an ellipse, normalised so that p^T M p equals
    ellipse.level(p) for p = (x, y, 1).
    """
    h, k, a, b, phi = ellipse
    c, s = math.cos(phi), math.sin(phi)
    T = np.array(
        [
            [c, s, -(c * h + s * k)],
            [-s, c, s * h - c * k],
            [0.0, 0.0, 1.0],
        ]
    )
    D = np.diag([1.0 / (a * a), 1.0 / (b * b), -1.0])
    return T.T @ D @ T


def _adjugate(m: np.ndarray) -> np.ndarray:
    r0, r1, r2 = m[0], m[1], m[2]
    return np.array([np.cross(r1, r2), np.cross(r2, r0), np.cross(r0, r1)]).T


def _skew(v: np.ndarray) -> np.ndarray:
    return np.array(
        [
            [0.0, v[2], -v[1]],
            [-v[2], 0.0, v[0]],
            [v[1], -v[0], 0.0],
        ]
    )


def pencil_roots(A: np.ndarray, B: np.ndarray, imag_tol: float = 1e-8) -> np.ndarray:
    """
    Real roots t of det(A + t B) = 0.

    For 3x3 matrices
        det(A + tB) = det A + t tr(adj(A) B) + t^2 tr(A adj(B)) + t^3 det B.
    """
    coeffs = np.array(
        [
            np.linalg.det(B),
            np.trace(A @ _adjugate(B)),
            np.trace(_adjugate(A) @ B),
            np.linalg.det(A),
        ]
    )
    if not np.all(np.isfinite(coeffs)):
        return np.empty(0)
    scale = float(np.max(np.abs(coeffs)))
    if scale == 0.0:
        return np.empty(0)
    coeffs = coeffs / scale
    coeffs[np.abs(coeffs) < 1e-14] = 0.0
    if not np.any(coeffs[:-1]):
        return np.empty(0)
    roots = np.roots(coeffs)
    real = np.abs(roots.imag) <= imag_tol * np.maximum(1.0, np.abs(roots.real))
    return np.sort(roots[real].real)


# ---------------------------------------------------------------------------
# Degenerate conics and lines
# ---------------------------------------------------------------------------

def split_degenerate_conic(C: np.ndarray, tol: float = 1e-10) -> List[np.ndarray]:
    """
    Split a degenerate conic into its two lines [g, h] (homogeneous line
    coordinates). A double line is returned twice. Complex conjugate line
    pairs, which only share one real point, give an empty list.
    """
    scale = float(np.max(np.abs(C)))
    if not np.isfinite(scale) or scale == 0.0:
        return []
    C = C / scale
    B = _adjugate(C)

    if float(np.max(np.abs(B))) < tol:
        row = int(np.argmax(np.linalg.norm(C, axis=1)))
        return [C[row], C[row]]

    diag = np.diag(B)
    i = int(np.argmax(np.abs(diag)))
    if diag[i] > tol or abs(diag[i]) < tol:
        return []

    p = B[:, i] / math.sqrt(-diag[i])
    M = C + _skew(p)
    r, c = np.unravel_index(int(np.argmax(np.abs(M))), M.shape)
    return [M[r, :].copy(), M[:, c].copy()]


def intersect_conic_line(A: np.ndarray, line: np.ndarray, tol: float = 1e-10) -> List[np.ndarray]:
    """
    Homogeneous intersection points of conic A with a line. Empty when the
    line misses the conic (complex pair); a tangent line gives the touching
    point twice.
    """
    norm_l = float(np.linalg.norm(line))
    norm_a = float(np.max(np.abs(A)))
    if norm_l == 0.0 or norm_a == 0.0 or not np.isfinite(norm_l * norm_a):
        return []
    l = line / norm_l
    A = A / norm_a

    M = _skew(l)
    B = M.T @ A @ M
    i = int(np.argmax(np.abs(l)))
    idx = [j for j in range(3) if j != i]
    disc = -float(np.linalg.det(B[np.ix_(idx, idx)]))
    if disc < -tol:
        return []

    alpha = math.sqrt(max(disc, 0.0)) / l[i]
    C = B + alpha * M
    r, c = np.unravel_index(int(np.argmax(np.abs(C))), C.shape)
    return [C[r, :].copy(), C[:, c].copy()]


def _dehomogenize(p: np.ndarray) -> Optional[np.ndarray]:
    w = p[2]
    if not np.all(np.isfinite(p)) or abs(w) <= 1e-12 * float(np.max(np.abs(p))):
        return None
    return p[:2] / w


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def _residual(A: np.ndarray, B: np.ndarray, x: np.ndarray) -> float:
    hp = np.array([x[0], x[1], 1.0])
    return max(abs(float(hp @ A @ hp)), abs(float(hp @ B @ hp)))


def _polish(A: np.ndarray, B: np.ndarray, x: np.ndarray, iterations: int = 4) -> np.ndarray:
    """A few Newton steps on p^T A p = p^T B p = 0; keeps the better point."""
    best = x
    best_res = _residual(A, B, x)
    cur = x
    for _ in range(iterations):
        hp = np.array([cur[0], cur[1], 1.0])
        Ap = A @ hp
        Bp = B @ hp
        F = np.array([hp @ Ap, hp @ Bp])
        J = 2.0 * np.array([Ap[:2], Bp[:2]])
        det = J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]
        if abs(det) <= 1e-12 * (np.linalg.norm(J[0]) * np.linalg.norm(J[1]) + 1e-300):
            break
        step = np.linalg.solve(J, -F)
        cur = cur + step
        res = _residual(A, B, cur)
        if res < best_res:
            best, best_res = cur, res
        if np.linalg.norm(step) <= 1e-15 * (1.0 + np.linalg.norm(cur)):
            break
    return best


def _merge_points(points: List[np.ndarray], distance: float) -> np.ndarray:
    merged: List[np.ndarray] = []
    for p in points:
        if all(np.linalg.norm(p - q) > distance for q in merged):
            merged.append(p)
    if not merged:
        return np.empty((0, 2))
    return np.array(merged)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def intersect_conics(
    A: np.ndarray,
    B: np.ndarray,
    tol: float = 1e-6,
    merge_distance: Optional[float] = None,
) -> np.ndarray:
    """
    Real intersection points of two conics, as an (k, 2) array with k <= 4.

    Parameters
    ----------
    A, B : symmetric 3x3 conic matrices. The on-curve test |p^T C p| <= tol
           assumes the normalised form produced by `conic_matrix`.
    tol  : acceptance tolerance of the on-curve test; also drives the
           tolerance of complex-root rejection.
    merge_distance : candidates closer than this collapse into one point
           (tangencies). Defaults to sqrt(tol).
    """
    A = np.asarray(A, float)
    B = np.asarray(B, float)
    if merge_distance is None:
        merge_distance = math.sqrt(tol)

    candidates: List[np.ndarray] = []
    for t in pencil_roots(A, B):
        C = A + t * B
        if float(np.max(np.abs(C))) <= 1e-12 * float(np.max(np.abs(A))):
            # coincident conics: every point is shared, report none
            continue
        for line in split_degenerate_conic(C, tol=tol * 1e-4):
            for hp in intersect_conic_line(B, line, tol=tol):
                x = _dehomogenize(hp)
                if x is None:
                    continue
                x = _polish(A, B, x)
                if _residual(A, B, x) <= tol:
                    candidates.append(x)

    points = _merge_points(candidates, merge_distance)
    if len(points) > 4:
        logger.debug("Dropping %d spurious intersection candidates.", len(points) - 4)
        order = np.argsort([_residual(A, B, p) for p in points])
        points = points[np.sort(order[:4])]
    return points


def intersect_ellipses(e1: Ellipse, e2: Ellipse, tol: float = 1e-6) -> np.ndarray:
    """Boundary crossings of two ellipses; merge distance scales with their size."""
    size = min(e1.a, e1.b, e2.a, e2.b)
    return intersect_conics(
        conic_matrix(e1),
        conic_matrix(e2),
        tol=tol,
        merge_distance=math.sqrt(tol) * size,
    )
