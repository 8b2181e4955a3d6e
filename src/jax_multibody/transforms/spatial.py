"""Spatial vector algebra used by the recursive dynamics algorithms.

Conventions follow ``se3``: motion vectors are ``[v; w]`` and force vectors
``[f; n]``, both about the origin of the frame they are expressed in.
"""

import jax
import jax.numpy as jnp

from .so3 import skew_symmetric

Array = jax.Array


def motion_cross(V: Array) -> Array:
    """
    Spatial cross-product operator for motion vectors.

    ``motion_cross(V) @ m`` is the rate of change of a motion vector ``m``
    rigidly attached to a frame moving with velocity ``V``.

    Args:
        V: (6,) spatial velocity [v; w]

    Returns:
        (6, 6) matrix [[w_x, v_x], [0, w_x]]
    """
    v_x = skew_symmetric(V[:3])
    w_x = skew_symmetric(V[3:])
    zeros = jnp.zeros((3, 3), dtype=V.dtype)
    return jnp.block([[w_x, v_x], [zeros, w_x]])


def force_cross(V: Array) -> Array:
    """Dual cross-product operator for force vectors, ``-motion_cross(V).T``."""
    v_x = skew_symmetric(V[:3])
    w_x = skew_symmetric(V[3:])
    zeros = jnp.zeros((3, 3), dtype=V.dtype)
    return jnp.block([[w_x, zeros], [v_x, w_x]])


def spatial_inertia_matrix(mass: Array, com: Array, inertia_cm: Array) -> Array:
    """
    6x6 spatial inertia of a body about its frame origin Bo.

    Args:
        mass: body mass
        com: (3,) position of the center of mass from Bo, expressed in B
        inertia_cm: (3, 3) rotational inertia about the center of mass,
            expressed in B

    Returns:
        (6, 6) matrix mapping spatial velocity [v; w] to momentum [p; h]
    """
    c_x = skew_symmetric(com)
    I3 = jnp.eye(3, dtype=c_x.dtype)
    return jnp.block([
        [mass * I3, -mass * c_x],
        [mass * c_x, inertia_cm - mass * (c_x @ c_x)],
    ])
