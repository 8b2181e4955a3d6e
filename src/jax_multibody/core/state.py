"""Externally owned state snapshot of a multibody model."""

import jax
import jax.numpy as jnp
from flax import struct

Array = jax.Array


@struct.dataclass
class MultibodyState:
    """Immutable PyTree holding generalized positions, velocities and time.

    The model never stores a state; every computation takes one explicitly.
    Updates return a new state through ``replace`` (or the joint helpers
    built on it).

    Attributes:
        q: Generalized positions of shape (num_positions,).
        v: Generalized velocities of shape (num_velocities,).
        time: Simulation time.
    """
    q: Array
    v: Array
    time: Array = 0.0

    @classmethod
    def from_vector(cls, x: Array, num_positions: int, time=0.0) -> "MultibodyState":
        """Split a continuous-state vector ``[q; v]`` into a state."""
        x = jnp.asarray(x, dtype=float)
        return cls(q=x[:num_positions], v=x[num_positions:], time=time)

    @property
    def x(self) -> Array:
        """The continuous state ``[q; v]``."""
        return jnp.concatenate([self.q, self.v])

    @property
    def num_positions(self) -> int:
        return self.q.shape[0]

    @property
    def num_velocities(self) -> int:
        return self.v.shape[0]
