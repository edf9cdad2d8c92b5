"""Tests for local shape functions and deformation mapping."""

import math

import numpy as np
import pytest

from dic_subset.core.parameters import CorrelationParameters, ProjectionMethod
from dic_subset.core.shape_function import (
    DOF, AffineDOF, FIELD_NAMES, ProjectiveShapeFunction, RigidStrainShapeFunction,
    ShapeFunctionState, affine_map_to_motion, check_deformation, map_affine,
    map_deformation, shape_function_factory,
)
from dic_subset.io.field_store import FieldState, FieldStore


def test_zero_parameters_are_the_identity_map():
    sf = RigidStrainShapeFunction()
    x = np.array([0.0, 0.1, 3.7, -12.25, 1e4])
    y = np.array([5.0, -0.3, 2.9, 8.5, -7.0])
    for cx, cy in [(0.0, 0.0), (0.7, -3.3), (1234.5, 99.1)]:
        out_x, out_y = sf.map(x, y, cx, cy)
        assert np.array_equal(out_x, x)
        assert np.array_equal(out_y, y)


def test_translation():
    sf = RigidStrainShapeFunction()
    sf.insert_motion(2.0, -1.5)
    assert sf.map(4.0, 6.0, 5.0, 5.0) == pytest.approx((6.0, 4.5))


def test_rotation_about_centroid():
    sf = RigidStrainShapeFunction()
    sf[DOF.THETA] = math.pi / 2
    out = sf.map(11.0, 10.0, 10.0, 10.0)
    assert out == pytest.approx((10.0, 11.0))


def test_rotation_recomputed_every_call():
    sf = RigidStrainShapeFunction()
    sf[DOF.THETA] = math.pi / 2
    sf.map(11.0, 10.0, 10.0, 10.0)
    sf[DOF.THETA] = 0.0
    assert sf.map(11.0, 10.0, 10.0, 10.0) == pytest.approx((11.0, 10.0))


def test_normal_and_shear_strain():
    sf = RigidStrainShapeFunction()
    sf[DOF.EX] = 0.1
    assert sf.map(20.0, 10.0, 10.0, 10.0) == pytest.approx((21.0, 10.0))
    sf.clear()
    sf[DOF.GXY] = 0.5
    # Dx = dx + g*dy, Dy = dy + g*dx
    assert sf.map(12.0, 14.0, 10.0, 10.0) == pytest.approx((14.0, 15.0))


def test_projective_map():
    d = [2.0, 0.0, 1.0, 0.0, 2.0, -1.0, 0.0, 0.0, 2.0]
    assert map_affine(3.0, 4.0, d) == pytest.approx((3.5, 3.5))


def test_projective_singular_map_raises():
    d = [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0]
    with pytest.raises(ValueError):
        check_deformation(d)
    with pytest.raises(ValueError):
        map_deformation(d, 1.0, 1.0, 0.0, 0.0)
    sf = ProjectiveShapeFunction()
    sf[AffineDOF.I] = 0.0
    with pytest.raises(ValueError):
        sf.map(1.0, 2.0)


def test_invalid_deformation_length_raises():
    with pytest.raises(ValueError):
        check_deformation(np.zeros(7))
    with pytest.raises(ValueError):
        map_deformation([0.0, 0.0], 1.0, 1.0, 0.0, 0.0)


def test_projective_identity_matches_rigid_identity(identity_affine, zero_def):
    x = np.array([3.0, 7.5])
    y = np.array([-2.0, 4.25])
    rigid = map_deformation(zero_def, x, y, 5.0, 5.0)
    proj = map_deformation(identity_affine, x, y, 5.0, 5.0)
    assert np.allclose(rigid, proj)


def test_map_to_u_v_theta():
    sf = RigidStrainShapeFunction()
    sf.insert_motion(1.0, 2.0, 0.25)
    assert sf.map_to_u_v_theta(0.0, 0.0) == (1.0, 2.0, 0.25)

    proj = ProjectiveShapeFunction()
    proj.insert_motion(3.0, -2.0, 0.3)
    u, v, theta = proj.map_to_u_v_theta(0.0, 0.0)
    assert (u, v) == pytest.approx((3.0, -2.0))
    assert theta == pytest.approx(0.3)


def test_affine_map_to_motion_rigid_vector():
    assert affine_map_to_motion(5.0, 5.0, [1.0, 2.0, 0.1, 0.0, 0.0, 0.0]) == (1.0, 2.0, 0.1)


def test_projective_add_translation():
    proj = ProjectiveShapeFunction()
    proj.add_translation(2.0, 3.0)
    assert proj.map(1.0, 1.0) == pytest.approx((3.0, 4.0))


def test_projective_clear_is_identity():
    proj = ProjectiveShapeFunction()
    assert proj.map(4.0, -3.0) == pytest.approx((4.0, -3.0))


def test_initialize_parameters_respects_flags():
    sf = RigidStrainShapeFunction()
    prior = [1.0, 2.0, 0.1, 0.01, 0.02, 0.03]
    flags = {'translation': True, 'rotation': False,
             'normal_strain': False, 'shear_strain': True}
    sf.initialize_parameters(prior, flags=flags)
    assert np.allclose(sf.parameters, [1.0, 2.0, 0.0, 0.0, 0.0, 0.03])
    assert sf.state == ShapeFunctionState.POPULATED


def test_initialize_parameters_velocity_extrapolation():
    sf = RigidStrainShapeFunction()
    prior = [1.0, 2.0, 0.2, 0.0, 0.0, 0.0]
    prior_prior = [0.5, 1.0, 0.1, 0.0, 0.0, 0.0]
    flags = {'translation': True, 'rotation': True}
    sf.initialize_parameters(prior, prior_prior, flags, use_velocity=True)
    assert np.allclose(sf.parameters, [1.5, 3.0, 0.3, 0.0, 0.0, 0.0])

    # without a second prior step there is nothing to extrapolate from
    sf.initialize_parameters(prior, None, flags, use_velocity=True)
    assert np.allclose(sf.parameters, prior)


def test_initialize_parameters_wrong_size():
    with pytest.raises(ValueError):
        RigidStrainShapeFunction().initialize_parameters([1.0, 2.0])


def test_state_machine():
    fields = FieldStore(2)
    sf = RigidStrainShapeFunction()
    assert sf.state == ShapeFunctionState.CLEARED
    sf.create_fields(fields)
    sf.initialize_parameters_from_fields(fields, 0)
    assert sf.state == ShapeFunctionState.POPULATED
    sf.map(1.0, 1.0, 0.0, 0.0)
    assert sf.state == ShapeFunctionState.MAPPED
    sf.save_fields(fields, 0)
    assert sf.state == ShapeFunctionState.SAVED


def _velocity_store(frame_offset):
    params = CorrelationParameters(projection_method=ProjectionMethod.VELOCITY_BASED)
    fields = FieldStore(3, params=params, first_frame_id=10)
    fields.frame_id = 10 + frame_offset
    sf = RigidStrainShapeFunction()
    sf.create_fields(fields)
    name = FIELD_NAMES[DOF.U]
    fields.set_global_field_value(1, name, 2.0)
    fields.set_global_field_value(1, name, 1.5, FieldState.PREVIOUS)
    return fields, sf


def test_initialize_from_fields_with_velocity():
    fields, sf = _velocity_store(2)
    sf.initialize_parameters_from_fields(fields, 1)
    assert sf[DOF.U] == pytest.approx(2.5)


def test_initialize_from_fields_too_early_for_velocity():
    fields, sf = _velocity_store(1)
    sf.initialize_parameters_from_fields(fields, 1)
    assert sf[DOF.U] == pytest.approx(2.0)


def test_save_and_reset_fields():
    fields = FieldStore(2)
    sf = RigidStrainShapeFunction()
    sf.create_fields(fields)
    sf.insert_motion(4.0, 5.0, 0.1)
    sf.save_fields(fields, 1)
    assert fields.global_field_value(1, 'SUBSET_DISPLACEMENT_X') == 4.0
    assert fields.global_field_value(1, 'ROTATION_Z') == pytest.approx(0.1)
    sf.reset_fields(fields)
    assert fields.global_field_value(1, 'SUBSET_DISPLACEMENT_Y') == 0.0


def test_factory_selects_variant():
    assert isinstance(shape_function_factory(), RigidStrainShapeFunction)
    proj = shape_function_factory(CorrelationParameters(affine_matrix_enabled=True))
    assert isinstance(proj, ProjectiveShapeFunction)
    assert proj.num_params == 9


def test_deformation_setter_validates_size():
    sf = RigidStrainShapeFunction()
    sf.deformation = [1, 2, 3, 4, 5, 6]
    assert np.allclose(sf.deformation, [1, 2, 3, 4, 5, 6])
    with pytest.raises(ValueError):
        sf.deformation = [1, 2, 3]
