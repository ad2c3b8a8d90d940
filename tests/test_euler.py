"""End-to-end tests of the euler() entry point."""

import math

import numpy as np
import pytest

from eulerfit import EulerConfig, euler
from eulerfit.labels import in_region
from eulerfit.shapes import Ellipse

FAST = dict(max_evaluations=150, initial_restarts=3, label_points=200, label_iterations=60)


def test_two_sets_fit_closely():
    fit = euler({"A": 2.0, "B": 2.0, "A&B": 1.0}, seed=1, **FAST)

    assert fit.set_names == ("A", "B")
    assert set(fit.fitted) == {("A",), ("B",), ("A", "B")}
    for key, target in fit.original.items():
        assert fit.fitted[key] == pytest.approx(target, rel=1e-3)
        assert fit.residuals[key] == pytest.approx(target - fit.fitted[key])
    assert fit.ellipses["A"].area == pytest.approx(3.0, rel=1e-6)
    assert len(fit.clusters) == 1


def test_label_centres_lie_in_their_regions():
    fit = euler({"A": 3.0, "B": 2.0, "C": 2.0, "A&B": 1.0, "A&C": 1.0, "B&C": 0.5, "A&B&C": 0.4}, seed=4, **FAST)

    ellipses = [fit.ellipses[n] for n in fit.set_names]
    for key, point in fit.centers.items():
        if fit.fitted[key] > 0.05:
            assert point is not None
            ids = [fit.set_names.index(n) for n in key]
            assert in_region(ellipses, ids, point)


def test_disjoint_sets_form_separate_clusters():
    fit = euler({"A": 1.0, "B": 1.0}, seed=0, **FAST)

    assert fit.fitted[("A", "B")] == 0.0
    assert fit.centers[("A", "B")] is None
    assert sorted(fit.clusters) == [("A",), ("B",)]
    x_min, x_max, y_min, y_max = fit.bounds
    for e in fit.ellipses.values():
        bx0, bx1, by0, by1 = e.bounding_box()
        assert x_min <= bx0 and bx1 <= x_max
        assert y_min <= by0 and by1 <= y_max


def test_empty_sets_get_zero_size_shapes():
    fit = euler({"A": 1.0}, set_names=["A", "B"], seed=0, **FAST)

    assert fit.ellipses["B"] == Ellipse(0.0, 0.0, 0.0, 0.0, 0.0)
    assert fit.fitted[("A",)] == pytest.approx(1.0)
    assert fit.fitted[("B",)] == 0.0
    assert fit.centers[("B",)] is None
    assert fit.centers[("A",)] is not None
    assert fit.ellipses["A"].area == pytest.approx(1.0)


def test_all_zero_targets_give_empty_layout():
    fit = euler({"A": 0.0, "B": 0.0})

    assert all(v == 0.0 for v in fit.fitted.values())
    assert fit.clusters == []


def test_results_scale_with_the_input_units():
    areas = {"A": 2.0, "B": 3.0, "A&B": 1.5}
    small = euler(areas, seed=5, **FAST)
    large = euler({k: 100.0 * v for k, v in areas.items()}, seed=5, **FAST)

    for name in small.set_names:
        assert np.allclose(np.array(large.ellipses[name])[:4], 10.0 * np.array(small.ellipses[name])[:4])
    for key in small.fitted:
        assert large.fitted[key] == pytest.approx(100.0 * small.fitted[key], rel=1e-9, abs=1e-9)


def test_seeded_fits_are_reproducible():
    areas = {"A": 3.0, "B": 2.0, "C": 1.0, "A&B": 0.5, "B&C": 0.3}

    a = euler(areas, seed=11, **FAST)
    b = euler(areas, seed=11, **FAST)

    assert a.ellipses == b.ellipses
    assert a.centers == b.centers


def test_ellipses_do_at_least_as_well_as_circles():
    areas = {"A": 4.0, "B": 4.0, "C": 0.5, "A&B": 3.0, "A&C": 0.3, "B&C": 0.3, "A&B&C": 0.1}
    cfg = EulerConfig(seed=2, **FAST)

    circles = euler(areas, config=cfg)
    ellipses = euler(areas, shape="ellipse", config=cfg)

    assert ellipses.shape == "ellipse"
    assert ellipses.loss <= circles.loss + 1e-6


def test_abs_loss_reports_absolute_error():
    fit = euler({"A": 1.0, "B": 1.0, "C": 1.0, "A&B": 0.2, "A&C": 0.2, "B&C": 0.2}, loss="abs", seed=3, **FAST)

    assert fit.loss == pytest.approx(sum(abs(r) for r in fit.residuals.values()), rel=1e-6, abs=1e-9)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(areas={"A": -1.0}),
        dict(areas={"A": 1.0}, shape="triangle"),
        dict(areas={"A": 1.0}, loss="huber"),
        dict(areas={"A": 1.0}, bogus=1),
        dict(areas={"A": 1.0, "A&Q": 1.0}, set_names=["A"]),
        dict(areas={"A": 1.0}, max_time=-1.0),
    ],
)
def test_invalid_input_raises_value_error(kwargs):
    areas = kwargs.pop("areas")
    with pytest.raises(ValueError):
        euler(areas, **kwargs)


def test_single_set_is_a_circle_of_the_right_area():
    fit = euler({"Only": math.pi}, seed=0)

    e = fit.ellipses["Only"]
    assert e.a == pytest.approx(1.0)
    assert e.is_circle
    assert fit.centers[("Only",)] is not None


@pytest.mark.parametrize("shape", ["circle", "ellipse"])
def test_label_search_through_shape_centres_does_not_crash(shape):
    fit = euler({"A": 3, "A&B": 1, "C": 1}, shape=shape, seed=1)

    ellipses = [fit.ellipses[n] for n in fit.set_names]
    for key, point in fit.centers.items():
        if point is not None:
            assert in_region(ellipses, [fit.set_names.index(n) for n in key], point)
    assert fit.centers[("C",)] is not None


def test_tiny_fitted_areas_are_zeroed_and_unlabelled():
    areas = {"A": 1.0, "B": 1.0, "A&B": 1e-5}

    fit = euler(areas, seed=0, zero_tolerance=1e-2, **FAST)

    assert fit.fitted[("A", "B")] == 0.0
    assert fit.centers[("A", "B")] is None
    assert fit.residuals[("A", "B")] == pytest.approx(1e-5)
    assert fit.centers[("A",)] is not None


def test_drawn_seed_reproduces_the_fit():
    areas = {"A": 2.0, "B": 1.0, "A&B": 0.5}

    first = euler(areas, **FAST)
    again = euler(areas, seed=first.seed, **FAST)

    assert first.seed is not None
    assert again.seed == first.seed
    assert again.ellipses == first.ellipses
    assert again.centers == first.centers
