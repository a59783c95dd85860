"""
Base Pydantic models for ibsode.

This module provides the foundational model class shared by every validated
data structure in the package: machine parameters, RF settings, equilibrium
results and integration configurations.
"""

from pydantic import BaseModel, ConfigDict
from typing import Dict, Any
import numpy as np


class PhysicsBaseModel(BaseModel):
    """
    Base Pydantic model for all physics-related data structures in ibsode.

    This model provides:
    - Strict validation with assignment checking
    - Rejection of unknown fields
    - Numpy array support
    - Plain dictionary / YAML conversion helpers

    Example:
        >>> class BunchParameters(PhysicsBaseModel):
        ...     particles: float = Field(gt=0, description="Bunch population")
        ...     sigs: float = Field(gt=0, description="Bunch length in m")

        >>> bunch = BunchParameters(particles=1e10, sigs=5e-3)
        >>> bunch.sigs
        0.005
    """

    model_config = ConfigDict(
        # Validation settings
        validate_assignment=True,        # Validate on attribute assignment
        extra="forbid",                  # Reject unknown fields for safety
        use_enum_values=True,            # Store enum members as their values

        # Type handling
        arbitrary_types_allowed=True,    # Allow numpy arrays and custom types
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """
        Create instance from a plain dictionary.

        Args:
            data: Dictionary with model field values

        Returns:
            Instance of the model
        """
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to a plain dictionary.

        Returns:
            Dictionary representation of the model
        """
        return self.model_dump()

    def to_yaml_dict(self) -> Dict[str, Any]:
        """
        Convert to a YAML-compatible dictionary.

        All numpy scalars and arrays are converted to builtin Python types
        so the result can be passed to ``yaml.safe_dump``.

        Returns:
            Dictionary suitable for YAML serialization
        """
        data = self.model_dump()

        def convert_numpy_types(obj):
            if isinstance(obj, np.ndarray):
                return obj.tolist()
            elif isinstance(obj, (np.float64, np.float32)):
                return float(obj)
            elif isinstance(obj, (np.int64, np.int32)):
                return int(obj)
            elif isinstance(obj, dict):
                return {k: convert_numpy_types(v) for k, v in obj.items()}
            elif isinstance(obj, (list, tuple)):
                return [convert_numpy_types(item) for item in obj]
            return obj

        return convert_numpy_types(data)


class FrozenPhysicsModel(PhysicsBaseModel):
    """Immutable variant of :class:`PhysicsBaseModel` for read-only run inputs and results."""

    model_config = ConfigDict(frozen=True)
