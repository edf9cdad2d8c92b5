"""Configuration parameters for subset correlation runs."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dic_subset.utils.helpers import setup_logger

logger = setup_logger(__name__)


class ProjectionMethod(Enum):
    DISPLACEMENT_BASED = "displacement_based"
    VELOCITY_BASED = "velocity_based"


@dataclass
class CorrelationParameters:
    """Which motion-model DOFs are solved for and how guesses are seeded."""
    translation_enabled: bool = True
    rotation_enabled: bool = True
    normal_strain_enabled: bool = False
    shear_strain_enabled: bool = False
    # Use the 9-parameter projective map instead of rigid+strain
    affine_matrix_enabled: bool = False
    projection_method: ProjectionMethod = ProjectionMethod.DISPLACEMENT_BASED
    # Growth applied to conformal boundaries when building blocked-pixel sets
    obstruction_skin_factor: float = 1.0
    # Worker threads for per-subset evaluation (None = executor default)
    max_workers: Optional[int] = None

    def to_dict(self):
        return {
            'translation_enabled': self.translation_enabled,
            'rotation_enabled': self.rotation_enabled,
            'normal_strain_enabled': self.normal_strain_enabled,
            'shear_strain_enabled': self.shear_strain_enabled,
            'affine_matrix_enabled': self.affine_matrix_enabled,
            'projection_method': self.projection_method.value,
            'obstruction_skin_factor': self.obstruction_skin_factor,
            'max_workers': self.max_workers,
        }

    @classmethod
    def from_dict(cls, d):
        return cls(
            translation_enabled=d.get('translation_enabled', True),
            rotation_enabled=d.get('rotation_enabled', True),
            normal_strain_enabled=d.get('normal_strain_enabled', False),
            shear_strain_enabled=d.get('shear_strain_enabled', False),
            affine_matrix_enabled=d.get('affine_matrix_enabled', False),
            projection_method=ProjectionMethod(
                d.get('projection_method', 'displacement_based')),
            obstruction_skin_factor=d.get('obstruction_skin_factor', 1.0),
            max_workers=d.get('max_workers'),
        )

    @property
    def enable_flags(self):
        """DOF family flags keyed by family name."""
        return {
            'translation': self.translation_enabled,
            'rotation': self.rotation_enabled,
            'normal_strain': self.normal_strain_enabled,
            'shear_strain': self.shear_strain_enabled,
        }

    def save_json(self, filepath: str):
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Saved correlation parameters to {filepath}")

    @classmethod
    def load_json(cls, filepath: str) -> 'CorrelationParameters':
        with open(filepath, 'r') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Invalid parameter file: {filepath}")
        return cls.from_dict(data)
