"""Common utility functions for subset tracking."""

import logging
import numpy as np


def setup_logger(name, log_file=None, level=logging.INFO):
    """Configure a named logger with console and optional file handler."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        fmt = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')
        ch = logging.StreamHandler()
        ch.setFormatter(fmt)
        logger.addHandler(ch)
        if log_file:
            fh = logging.FileHandler(log_file)
            fh.setFormatter(fmt)
            logger.addHandler(fh)
    return logger


# ---------------------------------------------------------------------------
# Pixel rounding
# ---------------------------------------------------------------------------

def round_half_up(value):
    """Round to the nearest integer pixel index, halves toward +inf.

    Works on scalars and arrays. ``3.5 -> 4``, ``-2.5 -> -2``.

    Returns
    -------
    int for scalar input, np.ndarray of int64 for array input
    """
    v = np.asarray(value, dtype=np.float64)
    whole = np.floor(v)
    # compare the fraction; v + 0.5 can round up below a half
    rounded = whole + ((v - whole) >= 0.5)
    if rounded.ndim == 0:
        return int(rounded)
    return rounded.astype(np.int64)


def coords_membership(rows, cols, coords):
    """Test each (row, col) pair for membership in a set of pixel coordinates.

    Parameters
    ----------
    rows, cols : np.ndarray of int, same length
    coords : set or frozenset of (row, col) tuples

    Returns
    -------
    np.ndarray of bool
    """
    n = len(rows)
    if not coords or n == 0:
        return np.zeros(n, dtype=bool)
    return np.fromiter(
        ((int(r), int(c)) in coords for r, c in zip(rows, cols)),
        dtype=bool, count=n)


# ---------------------------------------------------------------------------
# Bounding boxes
# ---------------------------------------------------------------------------

def bounding_box(x, y):
    """Integer extents of a coordinate cloud.

    Returns
    -------
    (min_x, max_x, min_y, max_y)
    """
    if len(x) == 0:
        raise ValueError("Cannot compute the bounding box of an empty pixel set")
    return int(np.min(x)), int(np.max(x)), int(np.min(y)), int(np.max(y))
