"""
JAX transforms library for rigid-body kinematics and dynamics.

This module provides JIT-compilable implementations of:
- SO(3) rotations and quaternion kinematics (so3 module)
- SE(3) rigid body transforms (se3 module)
- Spatial vector algebra for recursive dynamics (spatial module)

All functions are pure, stateless, and differentiable.
"""

from . import so3
from . import se3
from . import spatial

__all__ = [
    "so3",
    "se3",
    "spatial",
]
