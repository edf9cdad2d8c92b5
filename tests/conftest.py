"""Shared test fixtures."""

import numpy as np
import pytest

from dic_subset.core.subset import Subset
from dic_subset.io.image import Image


@pytest.fixture
def square_subset():
    """5x5 subset centred on (10, 10) with distinct reference intensities."""
    subset = Subset.from_rectangle(10, 10, 5, 5)
    subset.ref_intensities[:] = np.arange(subset.num_pixels, dtype=np.float64)
    subset.def_intensities[:] = np.arange(subset.num_pixels, dtype=np.float64) * 2.0
    return subset


@pytest.fixture
def speckle_image():
    """64x64 deterministic random texture."""
    rng = np.random.default_rng(1234)
    return Image.from_array(rng.uniform(0, 255, size=(64, 64)))


@pytest.fixture
def zero_def():
    return np.zeros(6)


@pytest.fixture
def identity_affine():
    return np.array([1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0])
