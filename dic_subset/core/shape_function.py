"""Local shape functions: parametric motion models for a subset.

Two variants share one interface:

1. Rigid + strain (6 DOF) - translation, rotation, normal and shear strain
   applied about the subset centroid.
2. Projective affine (9 DOF) - general homogeneous map ``[A..I]``.

Deformation vectors travel positionally: ``u, v, theta, e_xx, e_yy, g_xy``
for the 6-DOF model and ``A..I`` for the projective model.
"""

import math
from abc import ABC, abstractmethod
from enum import Enum, IntEnum

import numpy as np

from dic_subset.core.parameters import CorrelationParameters, ProjectionMethod
from dic_subset.io.field_store import FieldState
from dic_subset.utils.helpers import setup_logger

logger = setup_logger(__name__)


class DOF(IntEnum):
    U = 0
    V = 1
    THETA = 2
    EX = 3
    EY = 4
    GXY = 5


class AffineDOF(IntEnum):
    A = 0
    B = 1
    C = 2
    D = 3
    E = 4
    F = 5
    G = 6
    H = 7
    I = 8


DEFORMATION_SIZE = len(DOF)
DEFORMATION_SIZE_AFFINE = len(AffineDOF)

FIELD_NAMES = {
    DOF.U: 'SUBSET_DISPLACEMENT_X',
    DOF.V: 'SUBSET_DISPLACEMENT_Y',
    DOF.THETA: 'ROTATION_Z',
    DOF.EX: 'NORMAL_STRETCH_XX',
    DOF.EY: 'NORMAL_STRETCH_YY',
    DOF.GXY: 'SHEAR_STRETCH_XY',
}

AFFINE_FIELD_NAMES = {dof: f'AFFINE_{dof.name}' for dof in AffineDOF}

DOF_FAMILIES = {
    'translation': (DOF.U, DOF.V),
    'rotation': (DOF.THETA,),
    'normal_strain': (DOF.EX, DOF.EY),
    'shear_strain': (DOF.GXY,),
}


class ShapeFunctionState(Enum):
    UNINITIALIZED = "uninitialized"
    CLEARED = "cleared"
    POPULATED = "populated"
    MAPPED = "mapped"
    SAVED = "saved"


# ----------------------------------------------------------------------
# Deformation vector mapping
# ----------------------------------------------------------------------

def check_deformation(deformation) -> np.ndarray:
    """Validate a positional deformation vector and return it as float64.

    Raises
    ------
    ValueError
        If the length is neither 6 nor 9, or a projective vector has I == 0.
    """
    if deformation is None:
        raise ValueError("Deformation vector must not be None")
    d = np.asarray(deformation, dtype=np.float64).ravel()
    if d.size == DEFORMATION_SIZE_AFFINE:
        if d[AffineDOF.I] == 0.0:
            raise ValueError("Singular projective map: parameter I must be non-zero")
    elif d.size != DEFORMATION_SIZE:
        raise ValueError(
            f"Unknown deformation vector size {d.size} "
            f"(expected {DEFORMATION_SIZE} or {DEFORMATION_SIZE_AFFINE})")
    return d


def map_rigid_strain(x, y, cx, cy, deformation):
    """Map points through the 6-DOF rigid + strain model about (cx, cy)."""
    u, v, theta, ex, ey, gxy = deformation[:DEFORMATION_SIZE]
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    dx = x - cx
    dy = y - cy
    Dx = (1.0 + ex) * dx + gxy * dy
    Dy = (1.0 + ey) * dy + gxy * dx
    # written as an offset from (x, y) so that the identity map is exact
    out_x = x + (cos_t * Dx - sin_t * Dy - dx) + u
    out_y = y + (sin_t * Dx + cos_t * Dy - dy) + v
    return out_x, out_y


def map_affine(x, y, deformation):
    """Map points through the projective affine model.

    ``X = (A x + B y + C) / (G x + H y + I)``,
    ``Y = (D x + E y + F) / (G x + H y + I)``
    """
    A, B, C, D, E, F, G, H, I = deformation[:DEFORMATION_SIZE_AFFINE]
    if I == 0.0:
        raise ValueError("Singular projective map: parameter I must be non-zero")
    denom = G * x + H * y + I
    if np.any(np.asarray(denom) == 0.0):
        raise ValueError("Projective map denominator vanishes at a mapped point")
    out_x = (A * x + B * y + C) / denom
    out_y = (D * x + E * y + F) / denom
    return out_x, out_y


def map_deformation(deformation, x, y, cx, cy):
    """Map reference coordinates to the deformed configuration.

    Dispatches on vector length; the centroid is only used by the
    6-DOF model.
    """
    d = check_deformation(deformation)
    if d.size == DEFORMATION_SIZE:
        return map_rigid_strain(x, y, cx, cy, d)
    return map_affine(x, y, d)


def affine_map_to_motion(x, y, deformation):
    """Equivalent (u, v, theta) of a deformation vector at point (x, y).

    For the projective model the translation is ``mapped(x, y) - (x, y)``
    and the rotation is estimated from the linear part; the estimate is
    not exact when the map carries shear.
    """
    d = check_deformation(deformation)
    if d.size == DEFORMATION_SIZE:
        return float(d[DOF.U]), float(d[DOF.V]), float(d[DOF.THETA])
    x_prime, y_prime = map_affine(x, y, d)
    theta = math.atan2(d[AffineDOF.D], d[AffineDOF.A])
    return float(x_prime - x), float(y_prime - y), theta


# ----------------------------------------------------------------------
# Shape functions
# ----------------------------------------------------------------------

class LocalShapeFunction(ABC):
    """Fixed-size parameter vector indexed by a DOF enum plus a point map."""

    dofs = DOF
    field_names = FIELD_NAMES

    def __init__(self):
        self.parameters = np.zeros(len(self.dofs), dtype=np.float64)
        self.state = ShapeFunctionState.UNINITIALIZED
        self.clear()

    @property
    def num_params(self):
        return len(self.parameters)

    def __getitem__(self, dof):
        return float(self.parameters[dof])

    def __setitem__(self, dof, value):
        self.parameters[dof] = value

    @property
    def deformation(self) -> np.ndarray:
        """Copy of the parameters in positional wire layout."""
        return self.parameters.copy()

    @deformation.setter
    def deformation(self, values):
        values = np.asarray(values, dtype=np.float64).ravel()
        if values.size != self.num_params:
            raise ValueError(
                f"{type(self).__name__} expects {self.num_params} parameters, "
                f"got {values.size}")
        self.parameters[:] = values
        self.state = ShapeFunctionState.POPULATED

    @abstractmethod
    def clear(self):
        """Reset the parameters to the identity map."""

    @abstractmethod
    def map(self, x, y, cx, cy):
        """Map (x, y) from the reference to the deformed configuration."""

    @abstractmethod
    def map_to_u_v_theta(self, x, y):
        """Rigid-body equivalent (u, v, theta) at point (x, y)."""

    @abstractmethod
    def add_translation(self, u, v):
        """Shift the current map by a pure translation."""

    @abstractmethod
    def insert_motion(self, u, v, theta=None):
        """Overwrite the rigid-body part of the map."""

    @abstractmethod
    def initialize_parameters(self, prior, prior_prior=None, flags=None,
                              use_velocity=False):
        """Seed the parameters from previously solved values."""

    # -- field persistence ---------------------------------------------

    def create_fields(self, fields):
        """Create current and previous-step fields for every parameter."""
        for dof in self.dofs:
            fields.create_field(self.field_names[dof])

    def reset_fields(self, fields):
        """Zero every current-step parameter field."""
        for dof in self.dofs:
            fields.put_scalar(self.field_names[dof], 0.0)

    def save_fields(self, fields, subset_id: int):
        """Write the parameters back to the field store for one subset."""
        for dof in self.dofs:
            fields.set_global_field_value(
                subset_id, self.field_names[dof], self.parameters[dof])
        self.state = ShapeFunctionState.SAVED

    def read_fields(self, fields, subset_id: int, state=FieldState.CURRENT):
        """Positional parameter vector stored for one subset."""
        return np.array([
            fields.global_field_value(subset_id, self.field_names[dof], state)
            for dof in self.dofs
        ], dtype=np.float64)

    def initialize_parameters_from_fields(self, fields, subset_id: int):
        """Seed the parameters from the field store.

        Velocity extrapolation is used when the store's projection method
        asks for it and at least two solved steps precede the current frame.
        The threshold is inclusive (`frame_id >= first_frame_id + 2`):
        `advance_frame` runs before results are saved, so the reference
        frame's zero values count as a real prior.
        """
        params = fields.params
        prior = self.read_fields(fields, subset_id, FieldState.CURRENT)
        prior_prior = None
        use_velocity = (params.projection_method == ProjectionMethod.VELOCITY_BASED
                        and fields.frame_id >= fields.first_frame_id + 2)
        if use_velocity:
            prior_prior = self.read_fields(fields, subset_id, FieldState.PREVIOUS)
        self.initialize_parameters(prior, prior_prior, params.enable_flags,
                                   use_velocity)
        logger.debug(f"Subset {subset_id} initialized with values "
                     f"{np.array2string(self.parameters, precision=6)}")

    def __repr__(self):
        values = ", ".join(f"{dof.name}={self.parameters[dof]:.6g}" for dof in self.dofs)
        return f"{type(self).__name__}({values}, state={self.state.value})"


class RigidStrainShapeFunction(LocalShapeFunction):
    """6-DOF model: u, v, theta, e_xx, e_yy, g_xy about the subset centroid."""

    dofs = DOF
    field_names = FIELD_NAMES

    def __init__(self, enable_rotation=True, enable_normal_strain=True,
                 enable_shear_strain=True):
        self.enabled = {
            'translation': True,
            'rotation': enable_rotation,
            'normal_strain': enable_normal_strain,
            'shear_strain': enable_shear_strain,
        }
        super().__init__()

    def clear(self):
        self.parameters[:] = 0.0
        self.state = ShapeFunctionState.CLEARED

    def map(self, x, y, cx, cy):
        out = map_rigid_strain(x, y, cx, cy, self.parameters)
        self.state = ShapeFunctionState.MAPPED
        return out

    def map_to_u_v_theta(self, x, y):
        return self[DOF.U], self[DOF.V], self[DOF.THETA]

    def add_translation(self, u, v):
        self.parameters[DOF.U] += u
        self.parameters[DOF.V] += v

    def insert_motion(self, u, v, theta=None):
        self.parameters[DOF.U] = u
        self.parameters[DOF.V] = v
        if theta is not None:
            self.parameters[DOF.THETA] = theta

    def initialize_parameters(self, prior, prior_prior=None, flags=None,
                              use_velocity=False):
        """Seed each enabled DOF family from the prior step.

        With ``use_velocity`` and a ``prior_prior`` vector, the value is
        extrapolated as ``prior + (prior - prior_prior)``. Disabled
        families stay at zero.
        """
        prior = np.asarray(prior, dtype=np.float64).ravel()
        if prior.size != self.num_params:
            raise ValueError(f"Expected {self.num_params} prior values, got {prior.size}")
        extrapolate = use_velocity and prior_prior is not None
        if extrapolate:
            prior_prior = np.asarray(prior_prior, dtype=np.float64).ravel()
            if prior_prior.size != self.num_params:
                raise ValueError(
                    f"Expected {self.num_params} prior-prior values, got {prior_prior.size}")
        flags = self.enabled if flags is None else flags
        self.clear()
        for family, family_dofs in DOF_FAMILIES.items():
            if not flags.get(family, False):
                continue
            for dof in family_dofs:
                if extrapolate:
                    self.parameters[dof] = prior[dof] + (prior[dof] - prior_prior[dof])
                else:
                    self.parameters[dof] = prior[dof]
        self.state = ShapeFunctionState.POPULATED


class ProjectiveShapeFunction(LocalShapeFunction):
    """9-DOF projective affine model ``[A..I]``; I must stay non-zero."""

    dofs = AffineDOF
    field_names = AFFINE_FIELD_NAMES

    def clear(self):
        self.parameters[:] = 0.0
        self.parameters[AffineDOF.A] = 1.0
        self.parameters[AffineDOF.E] = 1.0
        self.parameters[AffineDOF.I] = 1.0
        self.state = ShapeFunctionState.CLEARED

    def map(self, x, y, cx=0.0, cy=0.0):
        out = map_affine(x, y, self.parameters)
        self.state = ShapeFunctionState.MAPPED
        return out

    def map_to_u_v_theta(self, x, y):
        return affine_map_to_motion(x, y, self.parameters)

    def add_translation(self, u, v):
        A, B, C, D, E, F, G, H, I = self.parameters
        self.parameters[AffineDOF.A] = A + u * G
        self.parameters[AffineDOF.B] = B + u * H
        self.parameters[AffineDOF.C] = C + u * I
        self.parameters[AffineDOF.D] = D + v * G
        self.parameters[AffineDOF.E] = E + v * H
        self.parameters[AffineDOF.F] = F + v * I

    def insert_motion(self, u, v, theta=None):
        """Replace the map with a rigid motion (rotation about the origin)."""
        theta = 0.0 if theta is None else theta
        c, s = math.cos(theta), math.sin(theta)
        self.parameters[:] = (c, -s, u, s, c, v, 0.0, 0.0, 1.0)

    def initialize_parameters(self, prior, prior_prior=None, flags=None,
                              use_velocity=False):
        """Seed all nine entries from the prior step (flags do not apply)."""
        prior = np.asarray(prior, dtype=np.float64).ravel()
        if prior.size != self.num_params:
            raise ValueError(f"Expected {self.num_params} prior values, got {prior.size}")
        values = prior
        if use_velocity and prior_prior is not None:
            prior_prior = np.asarray(prior_prior, dtype=np.float64).ravel()
            values = prior + (prior - prior_prior)
        if values[AffineDOF.I] == 0.0:
            # nothing solved yet for this subset
            self.clear()
        else:
            self.parameters[:] = values
        self.state = ShapeFunctionState.POPULATED


def shape_function_factory(params: CorrelationParameters = None) -> LocalShapeFunction:
    """Build the shape function variant selected for an analysis run."""
    params = params or CorrelationParameters()
    if params.affine_matrix_enabled:
        return ProjectiveShapeFunction()
    return RigidStrainShapeFunction(
        enable_rotation=params.rotation_enabled,
        enable_normal_strain=params.normal_strain_enabled,
        enable_shear_strain=params.shear_strain_enabled,
    )
