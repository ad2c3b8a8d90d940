"""Unit tests for cluster detection and skyline packing."""

import numpy as np
import pytest

from eulerfit.areas import disjoint_areas
from eulerfit.packing import bounding_box, find_clusters, overlap_matrix, pack, skyline_pack
from eulerfit.shapes import Ellipse


def _two_far_pairs():
    return [
        Ellipse.circle(0.0, 0.0, 1.0),
        Ellipse.circle(1.0, 0.0, 1.0),
        Ellipse.circle(100.0, 50.0, 1.0),
        Ellipse.circle(101.0, 50.0, 1.0),
    ]


def _boxes_overlap(b1, b2, eps=1e-9):
    return b1[0] < b2[1] - eps and b2[0] < b1[1] - eps and b1[2] < b2[3] - eps and b2[2] < b1[3] - eps


def test_overlap_matrix_and_clusters():
    ellipses = _two_far_pairs()

    adj = overlap_matrix(ellipses)

    assert adj[0, 1] and adj[2, 3]
    assert not adj[0, 2] and not adj[1, 3]
    assert find_clusters(ellipses) == [[0, 1], [2, 3]]


def test_nested_shapes_share_a_cluster():
    ellipses = [Ellipse.circle(0.0, 0.0, 2.0), Ellipse.circle(0.2, 0.0, 0.5), Ellipse.circle(9.0, 0.0, 1.0)]

    assert find_clusters(ellipses) == [[0, 1], [2]]


def test_skyline_places_side_by_side_when_room():
    positions = skyline_pack([1.0, 1.0], [1.0, 1.0], bin_width=2.0)

    assert np.allclose(positions, [[0.0, 0.0], [1.0, 0.0]])


def test_skyline_stacks_when_bin_is_full():
    positions = skyline_pack([2.0, 1.0], [1.0, 0.5], bin_width=2.0)

    assert np.allclose(positions, [[0.0, 0.0], [0.0, 1.0]])


def test_pack_separates_clusters_and_keeps_their_geometry():
    ellipses = _two_far_pairs()

    moved, bounds, clusters = pack(ellipses, gap=0.0, margin=0.0)

    assert clusters == [[0, 1], [2, 3]]
    boxes = [bounding_box([moved[i] for i in c]) for c in clusters]
    assert not _boxes_overlap(boxes[0], boxes[1])

    assert np.allclose(disjoint_areas(moved), disjoint_areas(ellipses))
    for c in clusters:
        offsets = [np.subtract(moved[i].center, ellipses[i].center) for i in c]
        assert np.allclose(offsets[0], offsets[1])

    box_areas = sum((b[1] - b[0]) * (b[3] - b[2]) for b in boxes)
    canvas = (bounds[1] - bounds[0]) * (bounds[3] - bounds[2])
    assert canvas <= box_areas * (1.0 + 1e-9)


def test_pack_adds_margin_and_gap():
    ellipses = _two_far_pairs()

    moved, bounds, clusters = pack(ellipses, gap=0.5, margin=0.25)

    boxes = [bounding_box([moved[i] for i in c]) for c in clusters]
    x_min, x_max, y_min, y_max = bounding_box(moved)
    assert bounds == pytest.approx((x_min - 0.25, x_max + 0.25, y_min - 0.25, y_max + 0.25))
    gap_x = max(boxes[1][0] - boxes[0][1], boxes[0][0] - boxes[1][1])
    gap_y = max(boxes[1][2] - boxes[0][3], boxes[0][2] - boxes[1][3])
    assert max(gap_x, gap_y) >= 0.5 - 1e-9


def test_pack_rejects_empty_input():
    with pytest.raises(ValueError):
        pack([])
