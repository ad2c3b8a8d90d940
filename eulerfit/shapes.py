"""
Ellipse primitive shared by every stage of the fit.

An ellipse is stored by centre (h, k), semi-axes (a, b) and rotation phi of
the a-axis against the x-axis. Circles are ellipses with a == b and phi == 0.
All point arguments are array-like with a trailing dimension of 2, so single
points and (M, 2) batches go through the same code.
"""

import math
from typing import NamedTuple, Tuple

import numpy as np
from scipy.optimize import brentq

TWOPI = 2.0 * np.pi


class Ellipse(NamedTuple):
    h: float
    k: float
    a: float
    b: float
    phi: float = 0.0

    @classmethod
    def circle(cls, h: float, k: float, r: float) -> "Ellipse":
        return cls(float(h), float(k), float(r), float(r), 0.0)

    @property
    def area(self) -> float:
        return math.pi * self.a * self.b

    @property
    def is_circle(self) -> bool:
        return abs(self.a - self.b) <= 1e-12 * max(self.a, self.b, 1e-300)

    @property
    def center(self) -> Tuple[float, float]:
        return self.h, self.k

    # -----------------------------------------------------------------------
    # Coordinates
    # -----------------------------------------------------------------------

    def to_local(self, points) -> np.ndarray:
        """Translate and rotate points into the ellipse's own axis frame."""
        p = np.asarray(points, float)
        c, s = math.cos(self.phi), math.sin(self.phi)
        dx = p[..., 0] - self.h
        dy = p[..., 1] - self.k
        return np.stack((c * dx + s * dy, -s * dx + c * dy), axis=-1)

    def level(self, points) -> np.ndarray:
        """
        Normalised implicit value (x'/a)^2 + (y'/b)^2 - 1.

        Negative inside, zero on the boundary, positive outside.
        """
        u = self.to_local(points)
        return (u[..., 0] / self.a) ** 2 + (u[..., 1] / self.b) ** 2 - 1.0

    def contains(self, points, tol: float = 0.0) -> np.ndarray:
        return self.level(points) <= tol

    def boundary_point(self, theta) -> np.ndarray:
        """Point(s) at eccentric anomaly theta."""
        t = np.asarray(theta, float)
        c, s = math.cos(self.phi), math.sin(self.phi)
        x = self.a * np.cos(t)
        y = self.b * np.sin(t)
        return np.stack((self.h + c * x - s * y, self.k + s * x + c * y), axis=-1)

    def bounding_box(self) -> Tuple[float, float, float, float]:
        """(x_min, x_max, y_min, y_max) of the rotated ellipse."""
        c, s = math.cos(self.phi), math.sin(self.phi)
        half_w = math.sqrt((self.a * c) ** 2 + (self.b * s) ** 2)
        half_h = math.sqrt((self.a * s) ** 2 + (self.b * c) ** 2)
        return (self.h - half_w, self.h + half_w, self.k - half_h, self.k + half_h)

    # -----------------------------------------------------------------------
    # Derived shapes
    # -----------------------------------------------------------------------

    def translate(self, dx: float, dy: float) -> "Ellipse":
        return self._replace(h=self.h + dx, k=self.k + dy)

    def scale(self, factor: float) -> "Ellipse":
        """Scale about the origin (positions and axes alike)."""
        f = float(factor)
        return Ellipse(self.h * f, self.k * f, self.a * f, self.b * f, self.phi)

    def normalized(self) -> "Ellipse":
        """Same ellipse with a >= b and phi in [-pi/2, pi/2); circles get phi = 0."""
        if self.is_circle:
            return Ellipse(self.h, self.k, self.a, self.a, 0.0)
        a, b, phi = self.a, self.b, self.phi
        if b > a:
            a, b = b, a
            phi += 0.5 * np.pi
        phi = (phi + 0.5 * np.pi) % np.pi - 0.5 * np.pi
        return Ellipse(self.h, self.k, a, b, float(phi))

    # -----------------------------------------------------------------------
    # Distance
    # -----------------------------------------------------------------------

    def distance_to_boundary(self, point) -> float:
        """
        Euclidean distance from a single point to the ellipse boundary.

        Works in the first quadrant of the axis frame and finds the closest
        boundary point by bisection on Eberly's root function, which is exact
        up to the root tolerance for points inside and outside alike.
        """
        u = self.to_local(point)
        y0, y1 = abs(float(u[0])), abs(float(u[1]))
        e0, e1 = float(self.a), float(self.b)
        if e0 < e1:
            e0, e1 = e1, e0
            y0, y1 = y1, y0
        return _distance_point_ellipse(e0, e1, y0, y1)


def _distance_point_ellipse(e0: float, e1: float, y0: float, y1: float) -> float:
    """e0 >= e1 > 0 and y0, y1 >= 0."""
    if e0 - e1 <= 1e-12 * e0:
        return abs(math.hypot(y0, y1) - e0)
    if y1 > 1e-12 * e1:
        if y0 > 0.0:
            z0 = y0 / e0
            z1 = y1 / e1
            g = z0 * z0 + z1 * z1 - 1.0
            if g == 0.0:
                return 0.0
            r0 = (e0 / e1) ** 2

            def F(s: float) -> float:
                return (r0 * z0 / (s + r0)) ** 2 + (z1 / (s + 1.0)) ** 2 - 1.0

            s0 = z1 - 1.0
            s1 = 0.0 if g < 0.0 else math.hypot(r0 * z0, z1) - 1.0
            if F(s1) >= 0.0:
                s = s1
            elif F(s0) <= 0.0:
                # rounding near the centre; s0 is the root up to precision
                s = s0
            else:
                s = brentq(F, s0, s1, xtol=1e-15, rtol=4 * np.finfo(float).eps)
            x0 = r0 * y0 / (s + r0)
            x1 = y1 / (s + 1.0)
            return math.hypot(x0 - y0, x1 - y1)
        return abs(y1 - e1)

    numer0 = e0 * y0
    denom0 = e0 * e0 - e1 * e1
    if numer0 < denom0:
        xde0 = numer0 / denom0
        x0 = e0 * xde0
        x1 = e1 * math.sqrt(max(0.0, 1.0 - xde0 * xde0))
        return math.hypot(x0 - y0, x1)
    return abs(y0 - e0)
