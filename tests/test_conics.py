"""Unit tests for conic matrices and conic intersection."""

import math

import numpy as np
import pytest

from eulerfit.conics import conic_matrix, intersect_conics, intersect_ellipses, split_degenerate_conic
from eulerfit.shapes import Ellipse


def _sorted_rows(points):
    points = np.asarray(points)
    return points[np.lexsort((points[:, 1], points[:, 0]))]


def test_conic_matrix_matches_level_function():
    e = Ellipse(1.5, -0.5, 3.0, 1.2, 0.7)
    M = conic_matrix(e)
    rng = np.random.default_rng(0)
    pts = rng.uniform(-5.0, 5.0, size=(20, 2))

    hp = np.column_stack((pts, np.ones(len(pts))))
    values = np.einsum("ij,jk,ik->i", hp, M, hp)

    assert np.allclose(M, M.T)
    assert np.allclose(values, e.level(pts))


def test_two_crossing_circles_meet_twice():
    pts = intersect_ellipses(Ellipse.circle(0.0, 0.0, 1.0), Ellipse.circle(1.0, 0.0, 1.0))

    assert pts.shape == (2, 2)
    expected = np.array([[0.5, -math.sqrt(3.0) / 2.0], [0.5, math.sqrt(3.0) / 2.0]])
    assert np.allclose(_sorted_rows(pts), expected, atol=1e-7)


def test_separated_circles_do_not_meet():
    pts = intersect_ellipses(Ellipse.circle(0.0, 0.0, 1.0), Ellipse.circle(3.0, 0.0, 1.0))

    assert pts.shape == (0, 2)


def test_nested_circles_do_not_meet():
    pts = intersect_ellipses(Ellipse.circle(0.0, 0.0, 2.0), Ellipse.circle(0.3, 0.1, 0.5))

    assert len(pts) == 0


def test_tangent_circles_collapse_to_one_point():
    pts = intersect_ellipses(Ellipse.circle(0.0, 0.0, 1.0), Ellipse.circle(2.0, 0.0, 1.0))

    assert len(pts) == 1
    assert np.allclose(pts[0], [1.0, 0.0], atol=1e-3)


def test_identical_circles_report_no_points():
    c = Ellipse.circle(0.2, 0.3, 1.0)

    assert len(intersect_ellipses(c, c)) == 0


def test_crossed_ellipses_meet_four_times():
    e1 = Ellipse(0.0, 0.0, 2.0, 1.0, 0.0)
    e2 = Ellipse(0.0, 0.0, 2.0, 1.0, math.pi / 2.0)

    pts = intersect_ellipses(e1, e2)

    x = 2.0 / math.sqrt(5.0)
    expected = np.array([[-x, -x], [-x, x], [x, -x], [x, x]])
    assert pts.shape == (4, 2)
    assert np.allclose(_sorted_rows(pts), expected, atol=1e-7)


def test_points_lie_on_both_rotated_ellipses():
    e1 = Ellipse(0.0, 0.0, 3.0, 1.0, 0.3)
    e2 = Ellipse(1.0, 0.5, 2.0, 1.5, -0.8)

    pts = intersect_ellipses(e1, e2)

    assert 1 <= len(pts) <= 4
    assert np.all(np.abs(e1.level(pts)) < 1e-6)
    assert np.all(np.abs(e2.level(pts)) < 1e-6)


def test_intersect_conics_accepts_raw_matrices():
    A = conic_matrix(Ellipse.circle(0.0, 0.0, 1.0))
    B = conic_matrix(Ellipse.circle(0.0, 1.0, 1.0))

    pts = intersect_conics(A, B)

    assert len(pts) == 2
    assert np.allclose(pts[:, 1], 0.5, atol=1e-7)


def test_split_degenerate_conic_recovers_line_pair():
    # lines x = 1 and y = 2 as homogeneous (1, 0, -1) and (0, 1, -2)
    g = np.array([1.0, 0.0, -1.0])
    h = np.array([0.0, 1.0, -2.0])
    C = np.outer(g, h) + np.outer(h, g)

    lines = split_degenerate_conic(C)

    assert len(lines) == 2
    for line in lines:
        line = line / np.max(np.abs(line))
        parallel_g = np.allclose(np.cross(line, g), 0.0, atol=1e-9)
        parallel_h = np.allclose(np.cross(line, h), 0.0, atol=1e-9)
        assert parallel_g or parallel_h


@pytest.mark.parametrize("d", [0.5, 1.0, 1.5, 1.9])
def test_circle_pairs_have_two_points_inside_reach(d):
    pts = intersect_ellipses(Ellipse.circle(0.0, 0.0, 1.0), Ellipse.circle(d, 0.0, 1.0))

    assert len(pts) == 2
    assert np.allclose(pts[:, 0], d / 2.0, atol=1e-7)
