"""Tests for PixelSet."""

import numpy as np
import pytest

from dic_subset.core.conformal import ConformalAreaDef, RectangleBoundary
from dic_subset.core.pixel_set import PixelSet


def test_from_rectangle_order_and_centroid():
    pixels = PixelSet.from_rectangle(10, 20, 3, 2)
    assert len(pixels) == 6
    assert pixels.x.tolist() == [9, 10, 11, 9, 10, 11]
    assert pixels.y.tolist() == [19, 19, 19, 20, 20, 20]
    assert pixels.centroid == (10.0, 20.0)
    assert pixels.bounding_box() == (9, 11, 19, 20)


def test_default_centroid_is_mean():
    pixels = PixelSet([0, 2, 4], [1, 1, 4])
    assert pixels.centroid == pytest.approx((2.0, 2.0))


def test_duplicate_coordinates_rejected():
    with pytest.raises(ValueError):
        PixelSet([1, 2, 1], [5, 5, 5])


def test_length_mismatch_rejected():
    with pytest.raises(ValueError):
        PixelSet([1, 2], [5])
    with pytest.raises(ValueError):
        PixelSet([], [])


def test_coordinates_are_read_only():
    pixels = PixelSet.from_rectangle(0, 0, 2, 2)
    with pytest.raises(ValueError):
        pixels.x[0] = 7


def test_from_coordinates_orders_row_major():
    pixels = PixelSet.from_coordinates([(3, 1), (1, 5), (1, 2)])
    assert pixels.y.tolist() == [1, 1, 3]
    assert pixels.x.tolist() == [2, 5, 1]
    assert pixels.coordinates() == frozenset({(3, 1), (1, 5), (1, 2)})


def test_from_conformal_def():
    area = ConformalAreaDef(boundary=[RectangleBoundary(4, 4, 3, 3)])
    pixels = PixelSet.from_conformal_def(area, cx=4, cy=4)
    assert len(pixels) == 9
    assert np.all((pixels.x >= 3) & (pixels.x <= 5))
    assert pixels.centroid == (4.0, 4.0)
