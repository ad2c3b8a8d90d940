from eulerfit.areas import disjoint_areas, intersection_area, region_area, union_area
from eulerfit.combinations import normalize_combination, parse_combinations
from eulerfit.conics import conic_matrix, intersect_conics, intersect_ellipses
from eulerfit.defaults import EulerConfig
from eulerfit.euler import EulerFit, euler
from eulerfit.labels import locate_point
from eulerfit.packing import pack
from eulerfit.shapes import Ellipse

__all__ = [
    "Ellipse",
    "EulerConfig",
    "EulerFit",
    "conic_matrix",
    "disjoint_areas",
    "euler",
    "intersect_conics",
    "intersect_ellipses",
    "intersection_area",
    "locate_point",
    "normalize_combination",
    "pack",
    "parse_combinations",
    "region_area",
    "union_area",
]
