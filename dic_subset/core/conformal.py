"""Boundary shapes describing conformal subsets and obstructions.

Each shape reports which integer pixels it covers for a given deformation.
Pixel coordinate sets are ``(row, col)`` pairs throughout.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
from matplotlib.path import Path

from dic_subset.core.shape_function import map_deformation

# Tolerance used to count pixel centres lying exactly on an edge as inside
_EDGE_TOL = 1e-9


class ConformalBoundary(ABC):
    """A closed shape that can rasterize itself under a deformation."""

    @abstractmethod
    def get_owned_pixels(self, deformation=None, cx=0.0, cy=0.0,
                         skin_factor=1.0) -> set:
        """Pixel coordinates covered by the shape.

        Parameters
        ----------
        deformation : optional 6 or 9 element deformation vector
        cx, cy : centroid used by the 6-DOF map
        skin_factor : float, growth of the shape about its own centre

        Returns
        -------
        set of (row, col)
        """


class PolygonBoundary(ConformalBoundary):
    """Polygon given by its vertices [(x, y), ...]."""

    def __init__(self, vertices):
        verts = np.asarray(vertices, dtype=np.float64)
        if verts.ndim != 2 or verts.shape[1] != 2 or len(verts) < 3:
            raise ValueError("A polygon needs at least 3 (x, y) vertices")
        self.vertices = verts

    def deformed_vertices(self, deformation=None, cx=0.0, cy=0.0, skin_factor=1.0):
        vx, vy = self.vertices[:, 0], self.vertices[:, 1]
        if deformation is not None:
            vx, vy = map_deformation(deformation, vx, vy, cx, cy)
        centre_x, centre_y = np.mean(vx), np.mean(vy)
        vx = centre_x + (vx - centre_x) * skin_factor
        vy = centre_y + (vy - centre_y) * skin_factor
        return np.column_stack([vx, vy])

    def get_owned_pixels(self, deformation=None, cx=0.0, cy=0.0,
                         skin_factor=1.0) -> set:
        verts = self.deformed_vertices(deformation, cx, cy, skin_factor)
        xs = np.arange(int(np.floor(verts[:, 0].min())),
                       int(np.ceil(verts[:, 0].max())) + 1)
        ys = np.arange(int(np.floor(verts[:, 1].min())),
                       int(np.ceil(verts[:, 1].max())) + 1)
        gx, gy = np.meshgrid(xs, ys)
        points = np.column_stack([gx.ravel(), gy.ravel()])
        path = Path(verts, closed=False)
        # the sign of radius that grows the path depends on vertex order
        inside = (path.contains_points(points, radius=_EDGE_TOL) |
                  path.contains_points(points, radius=-_EDGE_TOL))
        return {(int(y), int(x)) for x, y in points[inside]}

    def __repr__(self):
        return f"PolygonBoundary({len(self.vertices)} vertices)"


class RectangleBoundary(PolygonBoundary):
    """Axis-aligned rectangle centred on (center_x, center_y)."""

    def __init__(self, center_x, center_y, width, height):
        if width <= 0 or height <= 0:
            raise ValueError("Rectangle width and height must be positive")
        hw, hh = width / 2.0, height / 2.0
        super().__init__([
            (center_x - hw, center_y - hh),
            (center_x + hw, center_y - hh),
            (center_x + hw, center_y + hh),
            (center_x - hw, center_y + hh),
        ])
        self.center = (center_x, center_y)
        self.width = width
        self.height = height

    def __repr__(self):
        return (f"RectangleBoundary(center={self.center}, "
                f"width={self.width}, height={self.height})")


class CircleBoundary(ConformalBoundary):
    """Circle; the deformation moves its centre, the radius is kept."""

    def __init__(self, center_x, center_y, radius):
        if radius <= 0:
            raise ValueError("Circle radius must be positive")
        self.center = (float(center_x), float(center_y))
        self.radius = float(radius)

    def get_owned_pixels(self, deformation=None, cx=0.0, cy=0.0,
                         skin_factor=1.0) -> set:
        ox, oy = self.center
        if deformation is not None:
            ox, oy = map_deformation(deformation, ox, oy, cx, cy)
        r = self.radius * skin_factor
        xs = np.arange(int(np.floor(ox - r)), int(np.ceil(ox + r)) + 1)
        ys = np.arange(int(np.floor(oy - r)), int(np.ceil(oy + r)) + 1)
        gx, gy = np.meshgrid(xs, ys)
        inside = (gx - ox) ** 2 + (gy - oy) ** 2 <= r * r + _EDGE_TOL
        return {(int(y), int(x)) for x, y in zip(gx[inside], gy[inside])}

    def __repr__(self):
        return f"CircleBoundary(center={self.center}, radius={self.radius})"


def union_owned_pixels(shapes, deformation=None, cx=0.0, cy=0.0,
                       skin_factor=1.0) -> set:
    """Union of the pixels covered by several shapes."""
    coords = set()
    for shape in shapes:
        coords |= shape.get_owned_pixels(deformation, cx, cy, skin_factor)
    return coords


@dataclass
class ConformalAreaDef:
    """Footprint of a conformal subset in the reference configuration.

    The subset owns the union of ``boundary`` minus the union of
    ``excluded``. Pixels under ``obstructed`` stay in the subset but start
    out inactive.
    """
    boundary: List[ConformalBoundary]
    excluded: List[ConformalBoundary] = field(default_factory=list)
    obstructed: List[ConformalBoundary] = field(default_factory=list)

    def __post_init__(self):
        if not self.boundary:
            raise ValueError("A conformal area needs at least one boundary shape")

    def owned_pixels(self) -> set:
        return union_owned_pixels(self.boundary) - union_owned_pixels(self.excluded)

    def obstructed_pixels(self) -> set:
        return union_owned_pixels(self.obstructed)

    def extents(self) -> Tuple[int, int, int, int]:
        """(min_x, max_x, min_y, max_y) of the owned pixels."""
        coords = self.owned_pixels()
        if not coords:
            raise ValueError("Conformal area does not cover any pixels")
        rows = [r for r, _ in coords]
        cols = [c for _, c in coords]
        return min(cols), max(cols), min(rows), max(rows)
