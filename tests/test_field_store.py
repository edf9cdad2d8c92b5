"""Tests for the in-memory field store."""

import numpy as np
import pytest

from dic_subset.core.parameters import CorrelationParameters, ProjectionMethod
from dic_subset.io.field_store import FieldState, FieldStore


def test_create_and_access_fields():
    store = FieldStore(4)
    store.create_field('SUBSET_DISPLACEMENT_X')
    assert store.has_field('SUBSET_DISPLACEMENT_X')
    store.set_global_field_value(2, 'SUBSET_DISPLACEMENT_X', 1.25)
    assert store.global_field_value(2, 'SUBSET_DISPLACEMENT_X') == 1.25
    assert store.global_field_value(2, 'SUBSET_DISPLACEMENT_X', FieldState.PREVIOUS) == 0.0


def test_create_field_keeps_existing_values():
    store = FieldStore(2)
    store.create_field('ROTATION_Z')
    store.set_global_field_value(0, 'ROTATION_Z', 0.5)
    store.create_field('ROTATION_Z')
    assert store.global_field_value(0, 'ROTATION_Z') == 0.5


def test_unknown_field_raises():
    with pytest.raises(KeyError):
        FieldStore(1).global_field_value(0, 'NOPE')


def test_put_scalar():
    store = FieldStore(3)
    store.create_field('F')
    store.put_scalar('F', 7.0)
    assert np.all(store.get_field('F') == 7.0)
    assert np.all(store.get_field('F', FieldState.PREVIOUS) == 0.0)


def test_advance_frame_rolls_current_into_previous():
    store = FieldStore(2, first_frame_id=5)
    store.create_field('F')
    store.set_global_field_value(1, 'F', 3.0)
    store.advance_frame()
    assert store.frame_id == 6
    assert store.global_field_value(1, 'F', FieldState.PREVIOUS) == 3.0
    store.set_global_field_value(1, 'F', 4.0)
    assert store.global_field_value(1, 'F', FieldState.PREVIOUS) == 3.0


def test_save_and_load(tmp_path):
    params = CorrelationParameters(projection_method=ProjectionMethod.VELOCITY_BASED)
    store = FieldStore(3, params=params, first_frame_id=1)
    store.create_field('F')
    store.set_global_field_value(0, 'F', -2.5)
    store.advance_frame()
    path = str(tmp_path / "fields.json")
    store.save(path)

    loaded = FieldStore.load(path)
    assert loaded.frame_id == 2
    assert loaded.first_frame_id == 1
    assert loaded.params.projection_method == ProjectionMethod.VELOCITY_BASED
    assert loaded.global_field_value(0, 'F', FieldState.PREVIOUS) == -2.5


def test_from_dict_checks_field_length():
    data = FieldStore(2).to_dict()
    data['fields']['current'] = {'F': [1.0, 2.0, 3.0]}
    with pytest.raises(ValueError):
        FieldStore.from_dict(data)
