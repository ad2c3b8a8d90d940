import json
import logging
import os

from eulerfit import euler
from eulerfit.combinations import SEPARATOR


def make_demo_areas(names):
    """Shrinking areas for deeper combinations: 2^-(k-1) * 10 for k sets."""
    N = len(names)
    areas = {}
    for mask in range(1, 1 << N):
        members = [names[i] for i in range(N) if (mask >> i) & 1]
        areas[SEPARATOR.join(members)] = 10.0 / 2 ** (len(members) - 1)
    return areas


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    os.makedirs("out/eulerfit/", exist_ok=True)
    greek_names = [
        "Alpha", "Beta", "Gamma", "Delta", "Epsilon",
        "Zeta", "Eta", "Theta", "Iota",
    ]

    for shape in ["circle", "ellipse"]:
        for N in range(1, 5):  # tweak as desired
            print(f"Fitting euler diagram for shape={shape} N={N} ...")
            names = greek_names[:N]
            fit = euler(make_demo_areas(names), set_names=names, shape=shape, seed=1)

            outfile = f"out/eulerfit/{shape}_N{N}.json"
            with open(outfile, "w") as fh:
                json.dump(
                    {
                        "ellipses": {n: list(e) for n, e in fit.ellipses.items()},
                        "fitted": {SEPARATOR.join(k): v for k, v in fit.fitted.items()},
                        "residuals": {SEPARATOR.join(k): v for k, v in fit.residuals.items()},
                        "centers": {SEPARATOR.join(k): c for k, c in fit.centers.items()},
                        "bounds": list(fit.bounds),
                        "loss": fit.loss,
                        "converged": fit.converged,
                    },
                    fh,
                    indent=2,
                )
            print(f"  loss={fit.loss:.4g} converged={fit.converged} -> {outfile}")
