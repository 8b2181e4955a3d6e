"""Core multibody data structures.

This module provides the model registry together with the bodies, joints,
actuators and state snapshots it is built from.
"""

from .actuators import JointActuator
from .bodies import WORLD_BODY_NAME, RigidBody, SpatialInertia
from .identifiers import FrameId, SourceId, VisualGeometry
from .joints import (
    Joint,
    PrismaticJoint,
    QuaternionFloatingJoint,
    RevoluteJoint,
    WeldJoint,
)
from .model import ModelPhase, MultibodyModel
from .state import MultibodyState

__all__ = [
    "FrameId",
    "Joint",
    "JointActuator",
    "ModelPhase",
    "MultibodyModel",
    "MultibodyState",
    "PrismaticJoint",
    "QuaternionFloatingJoint",
    "RevoluteJoint",
    "RigidBody",
    "SourceId",
    "SpatialInertia",
    "VisualGeometry",
    "WORLD_BODY_NAME",
    "WeldJoint",
]
