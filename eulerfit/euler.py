#!/usr/bin/env python3
"""
Area-proportional Euler diagrams with circles or ellipses.

- `euler(...)` fits one layout: initial circle placement, least-squares
  refinement, cluster packing and label anchors.
- The fit runs on areas scaled to a unit total, so tolerances are
  independent of the caller's units; results are scaled back.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from eulerfit.combinations import (
    all_masks,
    combination_names,
    expand_values,
    parse_combinations,
    restrict_targets,
)
from eulerfit.defaults import EulerConfig
from eulerfit.final import refine
from eulerfit.initial import initial_layout, set_areas
from eulerfit.labels import locate_centers
from eulerfit.packing import pack
from eulerfit.shapes import Ellipse

logger = logging.getLogger(__name__)

Combination = Tuple[str, ...]


@dataclass(frozen=True)
class EulerFit:
    """
    Result of one fit.

    ellipses  : set name -> fitted Ellipse (zero-size at the origin for empty sets)
    original  : combination -> target disjoint area
    fitted    : combination -> disjoint area of the fitted layout
    residuals : combination -> original - fitted
    centers   : combination -> label anchor, None where no point was found
                or the fitted area is zero
    bounds    : canvas (x_min, x_max, y_min, y_max) after packing
    clusters  : groups of set names that overlap each other
    seed      : seed of the fit's generator; passing it back as `seed=`
                reproduces the fit
    """

    set_names: Tuple[str, ...]
    shape: str
    ellipses: Dict[str, Ellipse]
    original: Dict[Combination, float]
    fitted: Dict[Combination, float]
    residuals: Dict[Combination, float]
    centers: Dict[Combination, Optional[Tuple[float, float]]]
    bounds: Tuple[float, float, float, float]
    clusters: List[Tuple[str, ...]]
    loss: float
    converged: bool
    n_evaluations: int
    seed: Optional[int] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _degenerate_fit(names: Tuple[str, ...], targets: np.ndarray, shape: str) -> EulerFit:
    """All sets empty: nothing to place."""
    keys = [combination_names(m, names) for m in all_masks(len(names))]
    zero = Ellipse(0.0, 0.0, 0.0, 0.0, 0.0)
    return EulerFit(
        set_names=names,
        shape=shape,
        ellipses={n: zero for n in names},
        original={k: float(v) for k, v in zip(keys, targets)},
        fitted={k: 0.0 for k in keys},
        residuals={k: 0.0 for k in keys},
        centers={k: None for k in keys},
        bounds=(0.0, 0.0, 0.0, 0.0),
        clusters=[],
        loss=0.0,
        converged=True,
        n_evaluations=0,
    )


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def euler(
    areas: Mapping,
    set_names: Optional[Sequence[str]] = None,
    shape: Optional[str] = None,
    config: Optional[EulerConfig] = None,
    **overrides,
) -> EulerFit:
    """
    Fit an Euler diagram to disjoint target areas.

    Parameters
    ----------
    areas     : mapping combination -> disjoint area; keys like "A&B" or
                ("A", "B"). Missing combinations are 0.
    set_names : order of the sets; inferred from `areas` when None
    shape     : "circle" or "ellipse"; overrides config.shape
    config    : EulerConfig; keyword `overrides` replace individual fields

    Without `seed` a fresh one is drawn from OS entropy, logged, and stored
    on the result as `EulerFit.seed`; pass it back to repeat the fit.

    Raises ValueError on invalid input before any computation.
    """
    config = config or EulerConfig()
    if shape is not None:
        overrides["shape"] = shape
    config = config.replace(**overrides).validate()

    names, targets = parse_combinations(areas, set_names)
    N = len(names)
    total = float(np.sum(targets))
    if total == 0.0:
        logger.warning("All target areas are zero; returning an empty layout.")
        return _degenerate_fit(names, targets, config.shape)

    keep = [i for i, a in enumerate(set_areas(targets, N)) if a > 0.0]
    if len(keep) < N:
        logger.info("Sets without area are left out of the fit: %s", [names[i] for i in range(N) if i not in keep])
    M = len(keep)
    scaled = restrict_targets(targets, N, keep) / total
    seed = config.seed
    if seed is None:
        seed = int(np.random.SeedSequence().entropy)
        logger.info("No seed given; using seed=%d.", seed)
    rng = np.random.default_rng(seed)

    # 1. initial layout
    init = initial_layout(
        scaled,
        M,
        rng=rng,
        restarts=config.initial_restarts,
        max_iterations=config.iterations_for(M),
    )
    logger.info("initial layout: loss=%.4g", init.loss)

    # 2. final layout
    result = refine(
        init.circles(),
        scaled,
        shape=config.shape,
        loss=config.loss,
        tol=config.tol,
        max_evaluations=config.evaluations_for(M),
        max_time=config.max_time,
    )
    if not result.converged:
        logger.warning("Optimizer stopped before converging (loss %.4g); returning the best layout found.", result.loss)

    fitted = np.where(result.fitted < config.zero_tolerance, 0.0, result.fitted)

    # 3. packing
    packed, bounds, clusters = pack(
        result.ellipses,
        gap=config.pack_gap,
        margin=config.pack_margin,
        tol=config.tol,
    )

    # 4. label anchors
    anchors = locate_centers(
        packed,
        fitted,
        n_points=config.label_points,
        rng=rng,
        max_iterations=config.label_iterations,
        tol=config.tol,
    )
    for mask, point in anchors.items():
        if point is None and fitted[mask - 1] > 0.0:
            logger.warning("No label point found for %s.", combination_names(mask, [names[i] for i in keep]))

    # back to the caller's units
    s = math.sqrt(total)
    zero = Ellipse(0.0, 0.0, 0.0, 0.0, 0.0)
    shapes = {n: zero for n in names}
    for j, i in enumerate(keep):
        shapes[names[i]] = packed[j].scale(s)

    fitted_all = np.array(expand_values(fitted * total, N, keep, fill=0.0), float)
    anchor_list = [anchors[m] for m in all_masks(M)]
    centers_all = expand_values(anchor_list, N, keep, fill=None)

    residuals = targets - fitted_all
    if config.loss == "abs":
        loss = float(np.sum(np.abs(residuals)))
    else:
        loss = float(residuals @ residuals)

    keys = [combination_names(m, names) for m in all_masks(N)]
    fit = EulerFit(
        set_names=names,
        shape=config.shape,
        ellipses=shapes,
        original={k: float(v) for k, v in zip(keys, targets)},
        fitted={k: float(v) for k, v in zip(keys, fitted_all)},
        residuals={k: float(r) for k, r in zip(keys, residuals)},
        centers={k: (None if c is None else (c[0] * s, c[1] * s)) for k, c in zip(keys, centers_all)},
        bounds=tuple(float(b) * s for b in bounds),
        clusters=[tuple(names[keep[j]] for j in c) for c in clusters],
        loss=loss,
        converged=result.converged,
        n_evaluations=result.n_evaluations,
        seed=seed,
    )
    logger.info(
        "fitted %d set(s) with %s: loss=%.4g, %d cluster(s)",
        N, config.shape, fit.loss, len(fit.clusters),
    )
    return fit
