"""SE(3) rigid-body transforms and their action on spatial vectors.

Poses are 4x4 homogeneous matrices. ``X_AB`` denotes the pose of frame B
measured and expressed in frame A, so ``X_AC = X_AB @ X_BC``.

Spatial motion vectors (twists) are ordered ``[linear; angular]``: the first
three components are the translational velocity of the frame origin, the last
three the angular velocity. Spatial force vectors are ordered
``[force; torque]`` to match.
"""


import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    top = jnp.concatenate([R, p[..., None]], axis=-1)
    bottom = jnp.broadcast_to(
        jnp.array([0.0, 0.0, 0.0, 1.0], dtype=top.dtype), batch_shape + (1, 4)
    )
    return jnp.concatenate([top, bottom], axis=-2)


def from_translation(p: Array) -> Array:
    """Pure translation by ``p``."""
    p = jnp.asarray(p, dtype=float)
    return from_position_and_rotation(p, jnp.eye(3, dtype=p.dtype))


def from_rotation(R: Array) -> Array:
    """Pure rotation ``R`` about the origin."""
    R = jnp.asarray(R, dtype=float)
    return from_position_and_rotation(jnp.zeros(3, dtype=R.dtype), R)


def identity() -> Array:
    return jnp.eye(4)


def inverse(T: Array) -> Array:
    """
    Compute inverse of SE(3) transformation matrix.

    Uses the block structure: T^-1 = [[R^T, -R^T @ t], [0, 1]]

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 4, 4) inverse transformation matrix
    """
    R_inv = jnp.swapaxes(get_rotation(T), -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, get_position(T))
    return from_position_and_rotation(t_inv, R_inv)


def apply(T: Array, points: Array) -> Array:
    """
    Apply SE(3) transformation to points.

    Args:
        T: (4, 4) transformation matrix
        points: (3,) or (N, 3) points to transform

    Returns:
        (3,) or (N, 3) transformed points
    """
    return jnp.einsum("ij,...j->...i", get_rotation(T), points) + get_position(T)


def get_position(T: Array) -> Array:
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    return T[..., :3, :3]


def adjoint(T: Array) -> Array:
    """
    Motion-vector transform of a pose.

    For ``T = X_AB`` the returned 6x6 matrix maps a twist expressed in B about
    Bo to the same twist expressed in A about Ao.

    Args:
        T: (4, 4) transformation matrix

    Returns:
        (6, 6) adjoint matrix [[R, [t]_x R], [0, R]]
    """
    R = get_rotation(T)
    t_skew = so3.skew_symmetric(get_position(T))
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, t_skew @ R], axis=-1)
    bottom = jnp.concatenate([zeros, R], axis=-1)
    return jnp.concatenate([top, bottom], axis=-2)


def coadjoint(T: Array) -> Array:
    """
    Force-vector transform of a pose.

    For ``T = X_AB`` maps a spatial force ``[f; n]`` expressed in B about Bo
    to the same force expressed in A about Ao. Equals ``adjoint(inverse(T)).T``.
    """
    R = get_rotation(T)
    t_skew = so3.skew_symmetric(get_position(T))
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, zeros], axis=-1)
    bottom = jnp.concatenate([t_skew @ R, R], axis=-1)
    return jnp.concatenate([top, bottom], axis=-2)


def rotate_spatial_vector(R: Array, V: Array) -> Array:
    """Re-express both halves of a spatial vector ``V`` with rotation ``R``."""
    return jnp.concatenate([R @ V[:3], R @ V[3:]])
