"""Tests for CorrelationParameters."""

import json

import pytest

from dic_subset.core.parameters import CorrelationParameters, ProjectionMethod


def test_defaults():
    params = CorrelationParameters()
    assert params.translation_enabled
    assert not params.affine_matrix_enabled
    assert params.projection_method == ProjectionMethod.DISPLACEMENT_BASED


def test_dict_round_trip():
    params = CorrelationParameters(shear_strain_enabled=True,
                                   projection_method=ProjectionMethod.VELOCITY_BASED,
                                   max_workers=4)
    restored = CorrelationParameters.from_dict(params.to_dict())
    assert restored == params


def test_from_dict_fills_missing_keys():
    params = CorrelationParameters.from_dict({'rotation_enabled': False})
    assert not params.rotation_enabled
    assert params.obstruction_skin_factor == 1.0


def test_enable_flags():
    flags = CorrelationParameters(normal_strain_enabled=True).enable_flags
    assert flags == {'translation': True, 'rotation': True,
                     'normal_strain': True, 'shear_strain': False}


def test_json_file(tmp_path):
    path = str(tmp_path / "params.json")
    CorrelationParameters(affine_matrix_enabled=True).save_json(path)
    assert CorrelationParameters.load_json(path).affine_matrix_enabled

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([1, 2]))
    with pytest.raises(ValueError):
        CorrelationParameters.load_json(str(bad))


def test_unknown_projection_method():
    with pytest.raises(ValueError):
        CorrelationParameters.from_dict({'projection_method': 'sideways'})
