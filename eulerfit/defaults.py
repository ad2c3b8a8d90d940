from dataclasses import dataclass, fields, replace
from typing import Dict, Optional

# ---------------------------------------------------------------------------
# Per-N optimizer budgets (up to 9 sets)
# ---------------------------------------------------------------------------

MAX_SETS = 9

SHAPES = ("circle", "ellipse")
LOSSES = ("square", "abs")

# BFGS iterations for the initial (centre-only) layout.
INITIAL_ITERATIONS: Dict[int, int] = {
    1: 10,
    2: 100,
    3: 200,
    4: 300,
    5: 400,
    6: 500,
    7: 600,
    8: 800,
    9: 1000,
}

# Residual evaluations (finite-difference evaluations included) for the
# least-squares refinement, per shape kind.
FINAL_EVALUATIONS: Dict[str, Dict[int, int]] = {
    "circle": {
        1: 10,
        2: 300,
        3: 800,
        4: 1200,
        5: 1600,
        6: 2000,
        7: 2400,
        8: 3000,
        9: 3600,
    },
    "ellipse": {
        1: 10,
        2: 800,
        3: 2400,
        4: 3600,
        5: 4800,
        6: 6000,
        7: 7200,
        8: 8400,
        9: 9600,
    },
}


def _clamp_n(table: Dict[int, int], N: int) -> int:
    keys = sorted(table.keys())
    return max(keys[0], min(keys[-1], N))


def _default_max_iterations(N: int) -> int:
    """BFGS iteration budget of the initial layout for N sets."""
    return INITIAL_ITERATIONS[_clamp_n(INITIAL_ITERATIONS, N)]


def _default_max_evaluations(N: int, shape: str = "circle") -> int:
    """
    Residual-evaluation budget of the final layout for N sets.

    Unknown shape kinds are an error rather than a silent fallback.
    """
    table = FINAL_EVALUATIONS.get(shape)
    if table is None:
        raise RuntimeError(f"No evaluation budget defined for shape={shape!r}.")
    return table[_clamp_n(table, N)]


# ---------------------------------------------------------------------------
# Fit configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EulerConfig:
    """
    Knobs of one diagram fit.

    shape            : "circle" or "ellipse"
    seed             : seed of the per-fit numpy Generator (None = fresh entropy)
    tol              : tolerance of intersection / containment tests
    zero_tolerance   : fitted areas below this fraction of the total target
                       area are reported as exactly 0
    loss             : "square" (sum of squared errors) or "abs"
    max_iterations   : BFGS budget of the initial layout (None = per-N default)
    max_evaluations  : residual-evaluation budget per refinement stage
                       (None = per-N default)
    max_time         : wall-clock budget of the refinement in seconds (None = off)
    initial_restarts : random starts of the initial layout
    label_points     : golden-spiral seeds per label search
    label_iterations : Nelder-Mead iterations per label search
    pack_gap         : gap between packed clusters, relative to sqrt(total area)
    pack_margin      : canvas margin, relative to sqrt(total area)
    """

    shape: str = "circle"
    seed: Optional[int] = None
    tol: float = 1e-6
    zero_tolerance: float = 1e-6
    loss: str = "square"
    max_iterations: Optional[int] = None
    max_evaluations: Optional[int] = None
    max_time: Optional[float] = None
    initial_restarts: int = 10
    label_points: int = 500
    label_iterations: int = 200
    pack_gap: float = 0.1
    pack_margin: float = 0.05

    def replace(self, **overrides) -> "EulerConfig":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}.")
        return replace(self, **overrides)

    def validate(self) -> "EulerConfig":
        if self.shape not in SHAPES:
            raise ValueError(f"Unsupported shape {self.shape!r}; use 'circle' or 'ellipse'.")
        if self.loss not in LOSSES:
            raise ValueError(f"Unsupported loss {self.loss!r}; use 'square' or 'abs'.")
        if not self.tol > 0.0:
            raise ValueError("tol must be > 0.")
        if self.zero_tolerance < 0.0:
            raise ValueError("zero_tolerance must be >= 0.")
        for name in ("max_iterations", "max_evaluations"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be >= 1.")
        if self.max_time is not None and not self.max_time > 0.0:
            raise ValueError("max_time must be > 0.")
        if self.initial_restarts < 1:
            raise ValueError("initial_restarts must be >= 1.")
        if self.label_points < 1 or self.label_iterations < 0:
            raise ValueError("label_points must be >= 1 and label_iterations >= 0.")
        if self.pack_gap < 0.0 or self.pack_margin < 0.0:
            raise ValueError("pack_gap and pack_margin must be >= 0.")
        return self

    def iterations_for(self, N: int) -> int:
        if self.max_iterations is not None:
            return int(self.max_iterations)
        return _default_max_iterations(N)

    def evaluations_for(self, N: int, shape: Optional[str] = None) -> int:
        if self.max_evaluations is not None:
            return int(self.max_evaluations)
        return _default_max_evaluations(N, shape or self.shape)
