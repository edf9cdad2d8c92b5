"""Image abstraction consumed by subsets, plus 8-bit loading and writing."""

import os
from dataclasses import dataclass, field
from typing import Optional

import cv2
import numpy as np

from dic_subset.utils.helpers import setup_logger

logger = setup_logger(__name__)


@dataclass
class Image:
    """Grayscale intensities placed at an offset in global pixel space.

    ``intensities[row, col]`` holds the pixel at global coordinates
    ``(offset_x + col, offset_y + row)``.
    """
    intensities: np.ndarray = field(repr=False)
    offset_x: int = 0
    offset_y: int = 0
    file_name: Optional[str] = None

    def __post_init__(self):
        arr = np.asarray(self.intensities, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError(f"Image intensities must be 2D, got shape {arr.shape}")
        self.intensities = arr

    @classmethod
    def from_array(cls, array, offset_x=0, offset_y=0, file_name=None):
        return cls(intensities=array, offset_x=offset_x, offset_y=offset_y,
                   file_name=file_name)

    @property
    def width(self):
        return self.intensities.shape[1]

    @property
    def height(self):
        return self.intensities.shape[0]

    def at(self, col, row):
        """Intensity at local (col, row), i.e. relative to the offsets."""
        return float(self.intensities[row, col])

    @property
    def filename(self):
        return os.path.basename(self.file_name) if self.file_name else None


class ImageLoader:
    """Load grayscale images from disk."""

    SUPPORTED_FORMATS = ('.jpg', '.jpeg', '.png', '.tif', '.tiff', '.bmp')

    @staticmethod
    def load(filepath: str, offset_x: int = 0, offset_y: int = 0) -> Image:
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Image not found: {filepath}")

        ext = os.path.splitext(filepath)[1].lower()
        if ext not in ImageLoader.SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported format: {ext}")

        image_gray = cv2.imread(filepath, cv2.IMREAD_GRAYSCALE)
        if image_gray is None:
            raise IOError(f"Failed to load image: {filepath}")

        img_std = float(image_gray.std())
        if img_std < 10:
            logger.warning(
                f"Image '{os.path.basename(filepath)}' has very low contrast "
                f"(std={img_std:.1f}). Subset statistics may be unreliable.")

        return Image(intensities=image_gray, offset_x=offset_x,
                     offset_y=offset_y, file_name=filepath)


def encode_8bit(buffer) -> np.ndarray:
    """Clip an intensity buffer to [0, 255] and convert to uint8."""
    arr = np.asarray(buffer)
    if arr.dtype == np.uint8:
        return arr
    return np.clip(np.rint(arr), 0, 255).astype(np.uint8)


def write_image(filepath: str, buffer):
    """Write a 2D intensity buffer as an 8-bit single-channel image."""
    arr = encode_8bit(buffer)
    if arr.ndim != 2:
        raise ValueError(f"Expected a single-channel buffer, got shape {arr.shape}")
    if not cv2.imwrite(filepath, arr):
        raise IOError(f"Failed to write image: {filepath}")
    logger.debug(f"Wrote {arr.shape[1]}x{arr.shape[0]} image to {filepath}")
