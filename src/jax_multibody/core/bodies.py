"""Rigid bodies and their mass properties."""

from dataclasses import dataclass

import jax
import jax.numpy as jnp
from flax import struct

from ..transforms import spatial

Array = jax.Array

WORLD_BODY_NAME = "WorldBody"


@struct.dataclass
class SpatialInertia:
    """Mass properties of a rigid body about its own frame B.

    Attributes:
        mass: Body mass in kg.
        com: (3,) position of the center of mass from Bo, expressed in B.
        inertia_cm: (3, 3) rotational inertia about the center of mass,
            expressed in B.
    """
    mass: Array
    com: Array
    inertia_cm: Array

    @classmethod
    def from_rotational_inertia(cls, mass, com, inertia_cm) -> "SpatialInertia":
        inertia_cm = jnp.asarray(inertia_cm, dtype=float)
        if inertia_cm.shape != (3, 3):
            raise ValueError(f"Rotational inertia must have shape (3, 3), got {inertia_cm.shape}")
        if mass < 0:
            raise ValueError(f"Mass must be non-negative, got {mass}")
        return cls(
            mass=jnp.asarray(mass, dtype=float),
            com=jnp.asarray(com, dtype=float).reshape(3),
            inertia_cm=inertia_cm,
        )

    @classmethod
    def point_mass(cls, mass, com=(0.0, 0.0, 0.0)) -> "SpatialInertia":
        """A particle of the given mass located at ``com``."""
        return cls.from_rotational_inertia(mass, com, jnp.zeros((3, 3)))

    @classmethod
    def solid_sphere(cls, mass, radius, com=(0.0, 0.0, 0.0)) -> "SpatialInertia":
        return cls.from_rotational_inertia(mass, com, 0.4 * mass * radius**2 * jnp.eye(3))

    @classmethod
    def solid_box(cls, mass, size, com=(0.0, 0.0, 0.0)) -> "SpatialInertia":
        """A uniform box with edge lengths ``size = (lx, ly, lz)``."""
        lx, ly, lz = size
        inertia = mass / 12.0 * jnp.diag(jnp.array([ly**2 + lz**2, lx**2 + lz**2, lx**2 + ly**2]))
        return cls.from_rotational_inertia(mass, com, inertia)

    @classmethod
    def zero(cls) -> "SpatialInertia":
        return cls(mass=jnp.asarray(0.0), com=jnp.zeros(3), inertia_cm=jnp.zeros((3, 3)))

    def as_matrix(self) -> Array:
        """6x6 spatial inertia about Bo, see ``spatial.spatial_inertia_matrix``."""
        return spatial.spatial_inertia_matrix(self.mass, self.com, self.inertia_cm)


@dataclass(frozen=True, eq=False)
class RigidBody:
    """A rigid body of a multibody model.

    Bodies are compared by identity; ``model_id`` ties a body to the model
    that created it so foreign bodies can be rejected.

    Attributes:
        index: Ordinal index, 0 is reserved for the world body.
        name: Name unique among the bodies of the model.
        spatial_inertia: Constant mass properties.
        model_id: Identifier of the owning model.
    """
    index: int
    name: str
    spatial_inertia: SpatialInertia
    model_id: int

    @property
    def is_world(self) -> bool:
        return self.index == 0

    def __repr__(self) -> str:
        return f"RigidBody(index={self.index}, name={self.name!r})"
