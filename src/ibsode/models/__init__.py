"""
ibsode Pydantic Models Package

Base model and validators shared by the machine description, the
equilibrium results and the integration configuration.
"""

from .base import PhysicsBaseModel, FrozenPhysicsModel

__all__ = [
    'PhysicsBaseModel',
    'FrozenPhysicsModel',
]
