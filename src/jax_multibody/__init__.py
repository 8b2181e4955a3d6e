"""
JAX Multibody: rigid-body tree dynamics in JAX.

This library models a tree of rigid bodies connected by joints and provides
JIT-compilable, differentiable implementations of its kinematics, equations
of motion and local linearization.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import kinematics
from . import dynamics
from . import state_mapping
from . import linearization
from . import geometry
from . import io
from . import exceptions

from .core import (
    MultibodyModel,
    MultibodyState,
    PrismaticJoint,
    QuaternionFloatingJoint,
    RevoluteJoint,
    SpatialInertia,
    WeldJoint,
)
from .io import load_urdf

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "kinematics",
    "dynamics",
    "state_mapping",
    "linearization",
    "geometry",
    "io",
    "exceptions",
    "MultibodyModel",
    "MultibodyState",
    "PrismaticJoint",
    "QuaternionFloatingJoint",
    "RevoluteJoint",
    "SpatialInertia",
    "WeldJoint",
    "load_urdf",
]
