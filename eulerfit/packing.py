"""
Packing of disconnected clusters.

Ellipses that overlap (or nest) form clusters; each cluster is moved as a
rigid block so its internal geometry is untouched. Cluster bounding boxes are
placed with a skyline heuristic, tallest first, each at the x position that
keeps the skyline lowest.
"""

import logging
import math
from typing import List, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components

from eulerfit.areas import intersection_area
from eulerfit.shapes import Ellipse

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]


# ---------------------------------------------------------------------------
# Clusters
# ---------------------------------------------------------------------------

def overlap_matrix(ellipses: Sequence[Ellipse], tol: float = 1e-6) -> np.ndarray:
    """Symmetric boolean adjacency: True when two ellipses share area."""
    N = len(ellipses)
    adj = np.zeros((N, N), dtype=bool)
    for i in range(N):
        for j in range(i + 1, N):
            ei, ej = ellipses[i], ellipses[j]
            reach = max(ei.a, ei.b) + max(ej.a, ej.b)
            if math.hypot(ei.h - ej.h, ei.k - ej.k) >= reach:
                continue
            shared = intersection_area(ellipses, (i, j), tol=tol)
            if shared > tol * min(ei.area, ej.area):
                adj[i, j] = adj[j, i] = True
    return adj


def find_clusters(ellipses: Sequence[Ellipse], tol: float = 1e-6) -> List[List[int]]:
    """Connected components of the overlap graph, each sorted, in order of first member."""
    if len(ellipses) == 0:
        return []
    n_comp, labels = connected_components(csr_matrix(overlap_matrix(ellipses, tol)), directed=False)
    clusters = [sorted(int(i) for i in np.flatnonzero(labels == c)) for c in range(n_comp)]
    return sorted(clusters, key=lambda c: c[0])


def bounding_box(ellipses: Sequence[Ellipse]) -> Bounds:
    """(x_min, x_max, y_min, y_max) of a group of ellipses."""
    boxes = np.array([e.bounding_box() for e in ellipses], float)
    return (
        float(boxes[:, 0].min()),
        float(boxes[:, 1].max()),
        float(boxes[:, 2].min()),
        float(boxes[:, 3].max()),
    )


# ---------------------------------------------------------------------------
# Skyline
# ---------------------------------------------------------------------------

def _raise_skyline(skyline: List[List[float]], x: float, w: float, top: float) -> List[List[float]]:
    x_end = x + w
    out: List[List[float]] = []
    for seg_x, seg_y, seg_w in skyline:
        seg_end = seg_x + seg_w
        if seg_end <= x or seg_x >= x_end:
            out.append([seg_x, seg_y, seg_w])
            continue
        if seg_x < x:
            out.append([seg_x, seg_y, x - seg_x])
        if seg_end > x_end:
            out.append([x_end, seg_y, seg_end - x_end])
    out.append([x, top, w])
    out.sort(key=lambda s: s[0])

    merged: List[List[float]] = []
    for seg in out:
        if merged and merged[-1][1] == seg[1]:
            merged[-1][2] = seg[0] + seg[2] - merged[-1][0]
        else:
            merged.append(seg)
    return merged


def skyline_pack(widths, heights, bin_width: float) -> np.ndarray:
    """
    Bottom-left positions (x, y) of rectangles, returned in input order.

    Rectangles go in by decreasing height. Candidate x positions are the
    starts of the skyline segments; the chosen one minimises the resulting
    skyline height, then the resting height, then x. A rectangle wider than
    the bin goes on top of everything at x = 0.
    """
    widths = np.asarray(widths, float)
    heights = np.asarray(heights, float)
    positions = np.zeros((len(widths), 2), float)
    skyline = [[0.0, 0.0, float(bin_width)]]
    eps = 1e-12 * max(float(bin_width), 1.0)

    for idx in np.argsort(-heights, kind="stable"):
        w, h = float(widths[idx]), float(heights[idx])
        current = max(seg[1] for seg in skyline)

        best = None
        for i in range(len(skyline)):
            seg_x = skyline[i][0]
            x_end = seg_x + w
            if x_end > bin_width + eps:
                continue
            y = skyline[i][1]
            for j in range(i + 1, len(skyline)):
                if skyline[j][0] >= x_end - eps:
                    break
                y = max(y, skyline[j][1])
            key = (max(current, y + h), y, seg_x)
            if best is None or key < best:
                best = key

        if best is None:
            x, y = 0.0, current
        else:
            _, y, x = best
        positions[idx] = (x, y)
        skyline = _raise_skyline(skyline, x, w, y + h)
    return positions


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def pack(
    ellipses: Sequence[Ellipse],
    gap: float = 0.0,
    margin: float = 0.0,
    tol: float = 1e-6,
) -> Tuple[List[Ellipse], Bounds, List[List[int]]]:
    """
    Move clusters next to each other.

    Returns the translated ellipses, the canvas bounds
    (x_min, x_max, y_min, y_max) including `margin`, and the clusters.
    `gap` is the free space kept between cluster boxes.
    """
    ellipses = list(ellipses)
    if not ellipses:
        raise ValueError("pack needs at least one ellipse.")
    clusters = find_clusters(ellipses, tol)
    boxes = np.array([bounding_box([ellipses[i] for i in c]) for c in clusters], float)
    widths = boxes[:, 1] - boxes[:, 0] + gap
    heights = boxes[:, 3] - boxes[:, 2] + gap

    bin_width = max(float(widths.max()), math.sqrt(float(np.sum(widths * heights))))
    positions = skyline_pack(widths, heights, bin_width)

    moved = list(ellipses)
    for c, box, (px, py) in zip(clusters, boxes, positions):
        dx = px - box[0] + 0.5 * gap
        dy = py - box[2] + 0.5 * gap
        for i in c:
            moved[i] = ellipses[i].translate(dx, dy)

    x_min, x_max, y_min, y_max = bounding_box(moved)
    bounds = (x_min - margin, x_max + margin, y_min - margin, y_max + margin)
    logger.debug("packed %d cluster(s) into %.3g x %.3g", len(clusters), bounds[1] - bounds[0], bounds[3] - bounds[2])
    return moved, bounds, clusters
