"""Unit tests for the initial circle layout."""

import math

import numpy as np
import pytest
from scipy.optimize import check_grad

from eulerfit.areas import circle_overlap
from eulerfit.initial import (
    initial_gradient,
    initial_layout,
    initial_loss,
    pair_relations,
    separate_two_discs,
    set_areas,
    target_distances,
)

# masks: 1=A 2=B 3=AB 4=C 5=AC 6=BC 7=ABC
SYMMETRIC_TRIPLE = np.array([1.0, 1.0, 0.5, 1.0, 0.5, 0.5, 0.0])


def test_set_areas_sum_participating_regions():
    assert np.allclose(set_areas(SYMMETRIC_TRIPLE, 3), [2.0, 2.0, 2.0])


def test_pair_relations_detect_disjoint_and_subset():
    # A contains B, C is apart from both
    targets = np.array([3.0, 0.0, 1.0, 2.0, 0.0, 0.0, 0.0])

    disjoint, subset, overlaps = pair_relations(targets, 3)

    assert subset[0, 1] and subset[1, 0]
    assert not disjoint[0, 1]
    assert disjoint[0, 2] and disjoint[1, 2]
    assert not subset[0, 2]
    assert overlaps[0, 1] == pytest.approx(1.0)


@pytest.mark.parametrize("overlap", [0.05, 0.5, 1.2, 2.0])
def test_separate_two_discs_hits_requested_overlap(overlap):
    r1, r2 = 1.0, 0.9

    d = separate_two_discs(r1, r2, overlap)

    assert abs(r1 - r2) <= d <= r1 + r2
    assert circle_overlap(r1, r2, d) == pytest.approx(overlap, rel=1e-6)


def test_separate_two_discs_limits():
    assert separate_two_discs(1.0, 0.5, 0.0) == pytest.approx(1.5)
    assert separate_two_discs(1.0, 0.5, math.pi * 0.25) == pytest.approx(0.5)


def test_gradient_matches_finite_differences():
    radii, D2, disjoint, subset = target_distances(SYMMETRIC_TRIPLE, 3)
    z = np.array([0.1, 0.9, 0.4, -0.2, 0.05, 0.7])

    err = check_grad(initial_loss, initial_gradient, z, D2, disjoint, subset)

    assert err < 1e-5 * (1.0 + np.linalg.norm(initial_gradient(z, D2, disjoint, subset)))


def test_satisfied_disjoint_pair_costs_nothing():
    targets = np.array([1.0, 1.0, 0.0])
    radii, D2, disjoint, subset = target_distances(targets, 2)
    far = np.array([0.0, 10.0, 0.0, 0.0])

    assert initial_loss(far, D2, disjoint, subset) == 0.0
    assert np.all(initial_gradient(far, D2, disjoint, subset) == 0.0)


def test_symmetric_triple_stays_symmetric():
    start = np.array([[0.0, 0.0], [1.0, 0.0], [0.5, math.sqrt(3.0) / 2.0]])

    layout = initial_layout(SYMMETRIC_TRIPLE, 3, start=start)

    c = layout.centers
    d01 = np.linalg.norm(c[0] - c[1])
    d02 = np.linalg.norm(c[0] - c[2])
    d12 = np.linalg.norm(c[1] - c[2])
    assert d01 == pytest.approx(d02, rel=1e-6)
    assert d01 == pytest.approx(d12, rel=1e-6)
    assert np.allclose(layout.radii, math.sqrt(2.0 / math.pi))
    assert layout.loss < 1e-10


def test_random_restarts_are_reproducible():
    a = initial_layout(SYMMETRIC_TRIPLE, 3, rng=np.random.default_rng(7), restarts=3)
    b = initial_layout(SYMMETRIC_TRIPLE, 3, rng=np.random.default_rng(7), restarts=3)

    assert np.array_equal(a.centers, b.centers)
    assert len(a.circles()) == 3


def test_initial_layout_validates_arguments():
    with pytest.raises(ValueError):
        initial_layout(np.ones(4), 2, rng=np.random.default_rng(0))
    with pytest.raises(ValueError):
        initial_layout(SYMMETRIC_TRIPLE, 3)
    with pytest.raises(ValueError):
        initial_layout(SYMMETRIC_TRIPLE, 3, start=np.zeros((2, 2)))
