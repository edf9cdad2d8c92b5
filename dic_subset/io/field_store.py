"""In-memory per-subset field storage with current and previous-step states."""

import json
from enum import Enum
from typing import Optional

import numpy as np

from dic_subset.core.parameters import CorrelationParameters
from dic_subset.utils.helpers import setup_logger

logger = setup_logger(__name__)


class FieldState(Enum):
    CURRENT = "current"
    PREVIOUS = "previous"


class FieldStore:
    """Named scalar fields with one value per subset.

    Every field exists in two states: the current step and the previous
    (n-1) step. ``advance_frame`` rolls current values into the previous
    state and moves the frame counter forward.
    """

    def __init__(self, num_subsets: int,
                 params: Optional[CorrelationParameters] = None,
                 first_frame_id: int = 0):
        if num_subsets < 0:
            raise ValueError("Number of subsets must be non-negative")
        self.num_subsets = num_subsets
        self.params = params or CorrelationParameters()
        self.first_frame_id = first_frame_id
        self.frame_id = first_frame_id
        self._fields = {state: {} for state in FieldState}

    @property
    def field_names(self):
        return sorted(self._fields[FieldState.CURRENT])

    def has_field(self, name: str) -> bool:
        return name in self._fields[FieldState.CURRENT]

    def create_field(self, name: str):
        """Create a zero-filled field in both states (no-op if it exists)."""
        for state in FieldState:
            self._fields[state].setdefault(
                name, np.zeros(self.num_subsets, dtype=np.float64))

    def get_field(self, name: str, state: FieldState = FieldState.CURRENT) -> np.ndarray:
        try:
            return self._fields[state][name]
        except KeyError:
            raise KeyError(f"Unknown field: {name}") from None

    def global_field_value(self, subset_id: int, name: str,
                           state: FieldState = FieldState.CURRENT) -> float:
        return float(self.get_field(name, state)[subset_id])

    def set_global_field_value(self, subset_id: int, name: str, value: float,
                               state: FieldState = FieldState.CURRENT):
        self.get_field(name, state)[subset_id] = value

    def put_scalar(self, name: str, value: float,
                   state: FieldState = FieldState.CURRENT):
        self.get_field(name, state)[:] = value

    def advance_frame(self):
        """Copy current values into the previous state and step the frame id."""
        for name, values in self._fields[FieldState.CURRENT].items():
            self._fields[FieldState.PREVIOUS][name] = values.copy()
        self.frame_id += 1
        logger.debug(f"Advanced field store to frame {self.frame_id}")

    # -- serialization ---------------------------------------------------

    def to_dict(self):
        return {
            'num_subsets': self.num_subsets,
            'first_frame_id': self.first_frame_id,
            'frame_id': self.frame_id,
            'params': self.params.to_dict(),
            'fields': {
                state.value: {name: values.tolist()
                              for name, values in self._fields[state].items()}
                for state in FieldState
            },
        }

    @classmethod
    def from_dict(cls, d):
        store = cls(
            num_subsets=d['num_subsets'],
            params=CorrelationParameters.from_dict(d.get('params', {})),
            first_frame_id=d.get('first_frame_id', 0),
        )
        store.frame_id = d.get('frame_id', store.first_frame_id)
        for state in FieldState:
            for name, values in d.get('fields', {}).get(state.value, {}).items():
                arr = np.asarray(values, dtype=np.float64)
                if arr.shape != (store.num_subsets,):
                    raise ValueError(
                        f"Field {name} has {arr.size} values, "
                        f"expected {store.num_subsets}")
                store._fields[state][name] = arr
        return store

    def save(self, filepath: str):
        """Write the store to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Field store saved to {filepath} "
                    f"({len(self.field_names)} fields, frame {self.frame_id})")

    @classmethod
    def load(cls, filepath: str) -> 'FieldStore':
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def __repr__(self):
        return (f"FieldStore({self.num_subsets} subsets, "
                f"{len(self.field_names)} fields, frame={self.frame_id})")
