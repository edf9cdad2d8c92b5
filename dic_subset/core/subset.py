"""Subset: a tracked region of pixels with per-pixel activity state.

Per correlation step the optimizer drives three calls:

1. ``turn_off_obstructed_pixels(deformation)`` - flag pixels whose mapped
   location is obstructed or claimed by another subset.
2. ``num_active_pixels`` / ``contrast_std_dev`` / ``noise_std_dev`` -
   subset health for the candidate deformation.
3. ``turn_on_previously_obstructed_pixels()`` - after acceptance, reseed
   pixels that became visible again.
"""

import math
from enum import Enum
from typing import Optional

import numpy as np
from scipy.ndimage import correlate, map_coordinates

from dic_subset.core.conformal import ConformalAreaDef
from dic_subset.core.pixel_set import PixelSet
from dic_subset.core.shape_function import (
    DEFORMATION_SIZE, DOF, check_deformation, map_affine, map_deformation,
)
from dic_subset.io.image import Image, encode_8bit, write_image
from dic_subset.utils.helpers import coords_membership, round_half_up, setup_logger

logger = setup_logger(__name__)

LAPLACIAN_MASK = np.array([[1.0, -2.0, 1.0],
                           [-2.0, 4.0, -2.0],
                           [1.0, -2.0, 1.0]])

# Returned by noise_std_dev when the subset cannot be evaluated in the image
NOISE_SENTINEL = 1.0

INACTIVE_GRAY = 100


class SubsetTarget(Enum):
    REF_INTENSITIES = "ref"
    DEF_INTENSITIES = "def"


class Subset:
    """Pixels of one tracked region and their per-pixel state.

    Arrays ``ref_intensities``, ``def_intensities``, ``is_active`` and
    ``is_deactivated_this_step`` are parallel to ``pixels`` order.
    """

    def __init__(self, pixels: PixelSet, ref_intensities=None, active=None,
                 conformal_def: Optional[ConformalAreaDef] = None):
        n = len(pixels)
        self.pixels = pixels
        self.ref_intensities = self._per_pixel(ref_intensities, n, np.float64, 0.0)
        self.def_intensities = np.zeros(n, dtype=np.float64)
        self.is_active = self._per_pixel(active, n, bool, True)
        self.is_deactivated_this_step = np.zeros(n, dtype=bool)
        self.obstructed_coords = frozenset()
        self.pixels_blocked_by_other_subsets = frozenset()
        self.conformal_def = conformal_def

    @staticmethod
    def _per_pixel(values, n, dtype, default):
        if values is None:
            return np.full(n, default, dtype=dtype)
        arr = np.array(values, dtype=dtype).ravel()
        if arr.size != n:
            raise ValueError(f"Expected {n} per-pixel values, got {arr.size}")
        return arr

    @classmethod
    def from_rectangle(cls, cx, cy, width, height, ref_intensities=None):
        return cls(PixelSet.from_rectangle(cx, cy, width, height), ref_intensities)

    @classmethod
    def from_conformal_def(cls, area_def: ConformalAreaDef, cx=None, cy=None,
                           ref_intensities=None):
        """Conformal subset; pixels under obstructed shapes start inactive."""
        pixels = PixelSet.from_conformal_def(area_def, cx, cy)
        obstructed = area_def.obstructed_pixels()
        active = ~coords_membership(pixels.y, pixels.x, obstructed)
        subset = cls(pixels, ref_intensities, active, conformal_def=area_def)
        logger.debug(f"Conformal subset with {len(pixels)} pixels, "
                     f"{int(np.sum(~active))} initially inactive")
        return subset

    # -- geometry --------------------------------------------------------

    @property
    def num_pixels(self):
        return len(self.pixels)

    @property
    def x(self):
        return self.pixels.x

    @property
    def y(self):
        return self.pixels.y

    @property
    def cx(self):
        return self.pixels.cx

    @property
    def cy(self):
        return self.pixels.cy

    @property
    def is_conformal(self):
        return self.conformal_def is not None

    def map_pixels(self, deformation):
        """Deformed (X, Y) of every owned pixel."""
        return map_deformation(deformation, self.x.astype(np.float64),
                               self.y.astype(np.float64), self.cx, self.cy)

    # -- intensities -----------------------------------------------------

    def initialize(self, image: Image, target=SubsetTarget.REF_INTENSITIES,
                   deformation=None):
        """Sample intensities from an image, bilinearly, at the mapped pixels.

        Locations outside the image read as zero.
        """
        if deformation is None:
            X = self.x.astype(np.float64)
            Y = self.y.astype(np.float64)
        else:
            X, Y = self.map_pixels(deformation)
        coords = np.vstack([Y - image.offset_y, X - image.offset_x])
        values = map_coordinates(image.intensities, coords, order=1,
                                 mode='constant', cval=0.0)
        if target == SubsetTarget.REF_INTENSITIES:
            self.ref_intensities[:] = values
        else:
            self.def_intensities[:] = values

    def intensities(self, target=SubsetTarget.DEF_INTENSITIES) -> np.ndarray:
        if target == SubsetTarget.REF_INTENSITIES:
            return self.ref_intensities
        return self.def_intensities

    # -- obstruction -----------------------------------------------------

    def set_obstructed_coords(self, coords):
        """Install the obstruction snapshot for the next evaluation round."""
        self.obstructed_coords = frozenset(coords)

    def set_pixels_blocked_by_other_subsets(self, coords):
        self.pixels_blocked_by_other_subsets = frozenset(coords)

    def reset_is_deactivated_this_step(self):
        self.is_deactivated_this_step[:] = False

    def is_obstructed_pixel(self, coord_x, coord_y) -> bool:
        """True if the pixel nearest to (coord_x, coord_y) is obstructed.

        Halves round up: 3.5 falls in pixel 4.
        """
        point = (round_half_up(coord_y), round_half_up(coord_x))
        return point in self.obstructed_coords

    def deformed_shapes(self, deformation, cx, cy, skin_factor=1.0) -> set:
        """Pixels covered by this subset's boundary shapes under a deformation.

        Empty for subsets that are not conformal.
        """
        coords = set()
        if not self.is_conformal:
            return coords
        for shape in self.conformal_def.boundary:
            coords |= shape.get_owned_pixels(deformation, cx, cy, skin_factor)
        return coords

    def turn_off_obstructed_pixels(self, deformation):
        """Recompute ``is_deactivated_this_step`` for a candidate deformation.

        A pixel is deactivated when its mapped location lands on an
        obstructed pixel or on a pixel claimed by another subset.
        """
        check_deformation(deformation)
        self.reset_is_deactivated_this_step()
        X, Y = self.map_pixels(deformation)
        rows = round_half_up(Y)
        cols = round_half_up(X)
        deactivated = coords_membership(rows, cols, self.obstructed_coords)
        if self.pixels_blocked_by_other_subsets:
            deactivated |= coords_membership(
                rows, cols, self.pixels_blocked_by_other_subsets)
        self.is_deactivated_this_step[:] = deactivated

    def turn_on_previously_obstructed_pixels(self):
        """Reseed pixels that are visible this step but had no valid history.

        Relies on ``is_deactivated_this_step`` describing the accepted
        deformation.
        """
        reseed = ~self.is_deactivated_this_step & ~self.is_active
        self.ref_intensities[reseed] = self.def_intensities[reseed]
        self.is_active[reseed] = True
        if np.any(reseed):
            logger.debug(f"Reactivated {int(np.sum(reseed))} pixels")

    # -- statistics ------------------------------------------------------

    def active_mask(self) -> np.ndarray:
        """Pixels that are active and not deactivated this step."""
        return self.is_active & ~self.is_deactivated_this_step

    def num_active_pixels(self) -> int:
        return int(np.count_nonzero(self.active_mask()))

    def mean(self, target=SubsetTarget.DEF_INTENSITIES) -> float:
        """Mean intensity over the active pixels (0.0 if there are none)."""
        values = self.intensities(target)[self.active_mask()]
        if values.size == 0:
            return 0.0
        return float(np.mean(values))

    def contrast_std_dev(self) -> float:
        """Population std of the deformed intensities over the active pixels.

        Returns 0.0 when no pixel is active.
        """
        values = self.def_intensities[self.active_mask()]
        if values.size == 0:
            return 0.0
        mean_intensity = np.mean(values)
        return float(np.sqrt(np.mean((values - mean_intensity) ** 2)))

    def noise_std_dev(self, image: Image, deformation) -> float:
        """Estimate image noise under the subset's deformed bounding box.

        The box is shifted by the deformation's displacement and convolved
        with a discrete Laplacian; pixels on the image's outer frame
        contribute their absolute intensity. Returns ``NOISE_SENTINEL`` if
        the box leaves the image or is too narrow to have an interior.
        """
        d = check_deformation(deformation)
        min_x, max_x, min_y, max_y = self.pixels.bounding_box()
        if d.size == DEFORMATION_SIZE:
            u, v = d[DOF.U], d[DOF.V]
        else:
            x_prime, y_prime = map_affine(self.cx, self.cy, d)
            u, v = x_prime - self.cx, y_prime - self.cy
        min_x, max_x = int(min_x + u), int(max_x + u)
        min_y, max_y = int(min_y + v), int(max_y + v)
        logger.debug(f"Noise extents of subset: {min_x} {max_x} {min_y} {max_y}")

        h = max_y - min_y + 1
        w = max_x - min_x + 1
        img_h, img_w = image.height, image.width
        ox, oy = image.offset_x, image.offset_y
        if max_x >= img_w + ox or min_x < ox or max_y >= img_h + oy or min_y < oy:
            return NOISE_SENTINEL
        if w <= 2 or h <= 2:
            return NOISE_SENTINEL

        # local index ranges of the summed block (upper bounds exclusive)
        ly0, ly1 = min_y - oy, max_y - oy
        lx0, lx1 = min_x - ox, max_x - ox
        # one pixel of margin where the image has it
        ry0, ry1 = max(ly0 - 1, 0), min(ly1 + 1, img_h)
        rx0, rx1 = max(lx0 - 1, 0), min(lx1 + 1, img_w)
        region = image.intensities[ry0:ry1, rx0:rx1]
        conv = correlate(region, LAPLACIAN_MASK, mode='nearest')
        block = (slice(ly0 - ry0, ly1 - ry0), slice(lx0 - rx0, lx1 - rx0))

        rows = np.arange(ly0, ly1)[:, None]
        cols = np.arange(lx0, lx1)[None, :]
        on_frame = (cols < 1) | (cols >= img_w - 1) | (rows < 1) | (rows >= img_h - 1)
        total = np.sum(np.where(on_frame, np.abs(region[block]), np.abs(conv[block])))

        variance = total * math.sqrt(0.5 * math.pi) / (6.0 * (w - 2) * (h - 2))
        logger.debug(f"Noise std dev: {variance}")
        return float(variance)

    # -- debug rendering -------------------------------------------------

    def render(self, image: Image, deformation=None, show_image=False) -> np.ndarray:
        """Image-sized uint8 view of the subset.

        Without a deformation the owned pixels are drawn at 255. With one,
        each mapped pixel is 255 if inactive, 0 if deactivated this step and
        ``2 |def - ref|`` (saturated) otherwise.
        """
        w, h = image.width, image.height
        if show_image:
            buffer = encode_8bit(image.intensities).copy()
        else:
            buffer = np.zeros((h, w), dtype=np.uint8)

        if deformation is None:
            px = self.x - image.offset_x
            py = self.y - image.offset_y
            values = np.full(self.num_pixels, 255, dtype=np.uint8)
        else:
            X, Y = self.map_pixels(deformation)
            px = round_half_up(X - image.offset_x)
            py = round_half_up(Y - image.offset_y)
            residual = np.minimum(
                np.abs(self.def_intensities - self.ref_intensities) * 2.0, 255.0)
            values = np.where(~self.is_active, 255.0,
                              np.where(self.is_deactivated_this_step, 0.0, residual))
            values = values.astype(np.uint8)

        inside = (px >= 0) & (px < w) & (py >= 0) & (py < h)
        buffer[py[inside], px[inside]] = values[inside]
        return buffer

    def render_intensities(self, use_def_intensities=False) -> np.ndarray:
        """Bounding-box sized uint8 view of the intensities; inactive pixels gray."""
        min_x, max_x, min_y, max_y = self.pixels.bounding_box()
        buffer = np.zeros((max_y - min_y + 1, max_x - min_x + 1), dtype=np.float64)
        values = self.def_intensities if use_def_intensities else self.ref_intensities
        buffer[self.y - min_y, self.x - min_x] = np.where(
            self.is_active, values, INACTIVE_GRAY)
        return encode_8bit(buffer)

    def write_subset_on_image(self, file_name: str, image: Image, deformation=None):
        write_image(file_name, self.render(image, deformation, show_image=True))

    def write_tiff(self, file_name: str, use_def_intensities=False):
        write_image(file_name, self.render_intensities(use_def_intensities))

    def __repr__(self):
        return (f"Subset({self.num_pixels} pixels, "
                f"{self.num_active_pixels()} active, conformal={self.is_conformal})")
