"""Ordered set of integer pixel coordinates belonging to a subset."""

import numpy as np

from dic_subset.utils.helpers import bounding_box


class PixelSet:
    """Ordered, unique pixel coordinates plus a reference centroid.

    The order is fixed at construction; every per-pixel array of a
    subset is indexed positionally against it.
    """

    def __init__(self, x, y, cx=None, cy=None):
        x = np.asarray(x, dtype=np.int64).ravel()
        y = np.asarray(y, dtype=np.int64).ravel()
        if x.shape != y.shape:
            raise ValueError(f"x and y must have the same length ({x.size} != {y.size})")
        if x.size == 0:
            raise ValueError("A pixel set needs at least one pixel")
        if len(set(zip(x.tolist(), y.tolist()))) != x.size:
            raise ValueError("Pixel coordinates must be unique")
        x.flags.writeable = False
        y.flags.writeable = False
        self.x = x
        self.y = y
        self.cx = float(np.mean(x)) if cx is None else float(cx)
        self.cy = float(np.mean(y)) if cy is None else float(cy)

    @classmethod
    def from_rectangle(cls, cx, cy, width, height):
        """Rectangular block of width x height pixels centred on (cx, cy).

        Pixels are ordered row by row.
        """
        if width <= 0 or height <= 0:
            raise ValueError("Subset width and height must be positive")
        x0 = int(cx) - width // 2
        y0 = int(cy) - height // 2
        gy, gx = np.mgrid[y0:y0 + height, x0:x0 + width]
        return cls(gx.ravel(), gy.ravel(), cx, cy)

    @classmethod
    def from_coordinates(cls, coords, cx=None, cy=None):
        """Build from an iterable of (row, col) pairs, ordered row by row."""
        ordered = sorted(set((int(r), int(c)) for r, c in coords))
        if not ordered:
            raise ValueError("A pixel set needs at least one pixel")
        rows = [r for r, _ in ordered]
        cols = [c for _, c in ordered]
        return cls(cols, rows, cx, cy)

    @classmethod
    def from_conformal_def(cls, area_def, cx=None, cy=None):
        """Pixels owned by a ConformalAreaDef in the reference configuration."""
        return cls.from_coordinates(area_def.owned_pixels(), cx, cy)

    def __len__(self):
        return int(self.x.size)

    @property
    def num_pixels(self):
        return len(self)

    @property
    def centroid(self):
        return self.cx, self.cy

    def bounding_box(self):
        """(min_x, max_x, min_y, max_y)"""
        return bounding_box(self.x, self.y)

    def coordinates(self) -> frozenset:
        """All pixels as (row, col) pairs."""
        return frozenset(zip(self.y.tolist(), self.x.tolist()))

    def __repr__(self):
        return (f"PixelSet({len(self)} pixels, "
                f"centroid=({self.cx:.2f}, {self.cy:.2f}))")
