"""
Final layout: least-squares refinement of all shape parameters.

The residual vector holds, for every combination, the difference between the
disjoint area of the current layout and its target. The area surface is only
piecewise smooth (the set of active region vertices changes discretely), so
the Jacobian is estimated by finite differences and the trust-region solver
simply returns the best point it has seen when the budget runs out.
"""

import logging
import time
from typing import List, NamedTuple, Optional, Sequence

import numpy as np
from scipy.optimize import least_squares

from eulerfit.areas import disjoint_areas
from eulerfit.defaults import LOSSES, SHAPES
from eulerfit.shapes import Ellipse

logger = logging.getLogger(__name__)


class RefineResult(NamedTuple):
    ellipses: List[Ellipse]
    fitted: np.ndarray
    residuals: np.ndarray
    loss: float
    converged: bool
    n_evaluations: int


class _BudgetExhausted(Exception):
    pass


# ---------------------------------------------------------------------------
# Parameter vectors
# ---------------------------------------------------------------------------

def pack_parameters(ellipses: Sequence[Ellipse], shape: str) -> np.ndarray:
    """
    circle  : (h_0..h_{N-1}, k_0..k_{N-1}); radii stay fixed
    ellipse : (h.., k.., log a.., log b.., phi..)
    """
    arr = np.array([tuple(e) for e in ellipses], float).reshape(-1, 5)
    h, k, a, b, phi = arr.T
    if shape == "circle":
        return np.concatenate((h, k))
    return np.concatenate((h, k, np.log(a), np.log(b), phi))


def unpack_parameters(par: np.ndarray, shape: str, radii: Optional[np.ndarray] = None) -> List[Ellipse]:
    if shape == "circle":
        N = par.size // 2
        if radii is None or len(radii) != N:
            raise ValueError("Circle parameters need one fixed radius per set.")
        return [Ellipse.circle(par[i], par[N + i], radii[i]) for i in range(N)]
    N = par.size // 5
    h, k, la, lb, phi = par.reshape(5, N)
    a = np.exp(la)
    b = np.exp(lb)
    return [Ellipse(float(h[i]), float(k[i]), float(a[i]), float(b[i]), float(phi[i])) for i in range(N)]


# ---------------------------------------------------------------------------
# Objective
# ---------------------------------------------------------------------------

class _Objective:
    """Residual function that remembers the best point it has evaluated."""

    def __init__(self, targets, shape, radii, loss, tol, max_evaluations, deadline):
        self.targets = targets
        self.shape = shape
        self.radii = radii
        self.loss = loss
        self.tol = tol
        self.max_evaluations = max_evaluations
        self.deadline = deadline
        self.penalty = 1.0 + float(np.sum(targets))
        self.n_evaluations = 0
        self.best_value = np.inf
        self.best_par = None
        self.best_fitted = None

    def __call__(self, par: np.ndarray) -> np.ndarray:
        if self.n_evaluations >= self.max_evaluations:
            raise _BudgetExhausted("evaluations")
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise _BudgetExhausted("time")
        self.n_evaluations += 1

        fitted = disjoint_areas(unpack_parameters(par, self.shape, self.radii), self.tol)
        if not np.all(np.isfinite(fitted)):
            fitted = np.where(np.isfinite(fitted), fitted, self.penalty)
        diff = fitted - self.targets
        if self.loss == "abs":
            res = np.sign(diff) * np.sqrt(np.abs(diff))
        else:
            res = diff

        value = float(res @ res)
        if value < self.best_value:
            self.best_value = value
            self.best_par = np.array(par, float)
            self.best_fitted = fitted
        return res


def _refine_stage(
    ellipses: Sequence[Ellipse],
    targets: np.ndarray,
    shape: str,
    loss: str,
    tol: float,
    max_evaluations: int,
    deadline: Optional[float],
    xtol: float,
) -> RefineResult:
    radii = np.array([e.a for e in ellipses]) if shape == "circle" else None
    x0 = pack_parameters(ellipses, shape)
    objective = _Objective(targets, shape, radii, loss, tol, max_evaluations, deadline)

    converged = False
    try:
        result = least_squares(
            objective,
            x0,
            method="trf",
            jac="2-point",
            ftol=xtol,
            xtol=xtol,
            gtol=xtol,
            max_nfev=max_evaluations,
        )
        converged = result.status > 0
        logger.debug("%s refinement: status=%d nfev=%d cost=%.3g", shape, result.status, result.nfev, result.cost)
    except _BudgetExhausted as exc:
        logger.debug("%s refinement stopped: %s budget exhausted.", shape, exc)

    if objective.best_par is None:
        # budget too small to evaluate even the start
        fitted = disjoint_areas(list(ellipses), tol)
        best = list(ellipses)
    else:
        fitted = objective.best_fitted
        best = unpack_parameters(objective.best_par, shape, radii)

    residuals = targets - fitted
    value = float(np.sum(np.abs(residuals))) if loss == "abs" else float(residuals @ residuals)
    return RefineResult(best, fitted, residuals, value, converged, objective.n_evaluations)


def refine(
    ellipses: Sequence[Ellipse],
    targets: np.ndarray,
    shape: str = "circle",
    loss: str = "square",
    tol: float = 1e-6,
    max_evaluations: int = 800,
    max_time: Optional[float] = None,
    xtol: float = 1e-10,
) -> RefineResult:
    """
    Fit shape parameters so that disjoint region areas match `targets`.

    Parameters
    ----------
    ellipses        : starting shapes, one per set (circles from the initial layout)
    targets         : disjoint target areas indexed by mask - 1
    shape           : "circle" (centres only) or "ellipse" (all five parameters)
    loss            : "square" or "abs"
    max_evaluations : residual evaluations per stage, finite differences included
    max_time        : optional wall-clock budget in seconds for the whole call

    Ellipse fits start with a circle stage when every starting shape is a
    circle and continue from its result, so they never end worse than the
    circle fit. Never raises for non-convergence: the best point seen is
    returned with converged=False.
    """
    if shape not in SHAPES:
        raise ValueError(f"Unsupported shape {shape!r}; use 'circle' or 'ellipse'.")
    if loss not in LOSSES:
        raise ValueError(f"Unsupported loss {loss!r}; use 'square' or 'abs'.")
    ellipses = list(ellipses)
    N = len(ellipses)
    targets = np.asarray(targets, float)
    if N == 0 or targets.shape != ((1 << N) - 1,):
        raise ValueError(f"Expected {(1 << N) - 1} target areas for {N} shapes, got {targets.shape}.")
    if np.any(targets < 0.0) or not np.all(np.isfinite(targets)):
        raise ValueError("Target areas must be finite and non-negative.")

    deadline = None if max_time is None else time.monotonic() + float(max_time)

    if shape == "circle" or all(e.is_circle for e in ellipses):
        result = _refine_stage(ellipses, targets, "circle", loss, tol, max_evaluations, deadline, xtol)
        logger.info("circle fit: loss=%.4g evaluations=%d converged=%s", result.loss, result.n_evaluations, result.converged)
        if shape == "circle":
            return result
        start, spent = result.ellipses, result.n_evaluations
    else:
        start, spent = ellipses, 0

    stage = _refine_stage(start, targets, "ellipse", loss, tol, max_evaluations, deadline, xtol)
    best = stage
    if spent and result.loss < stage.loss:
        best = result
    logger.info("ellipse fit: loss=%.4g evaluations=%d converged=%s", stage.loss, stage.n_evaluations, stage.converged)
    return best._replace(
        ellipses=[e.normalized() for e in best.ellipses],
        n_evaluations=spent + stage.n_evaluations,
    )
