"""SO(3) rotations and unit-quaternion kinematics in JAX.

This module implements the rotational building blocks of the multibody
engine: rotation matrices about fixed axes, conversions between rotation
matrices and quaternions, and the analytic relation between a body's angular
velocity and the time derivative of its orientation quaternion. All functions
are pure, JIT-able, and operate on JAX arrays.

Quaternions use the (w, x, y, z) convention throughout.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric (cross-product) matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) matrix K such that K @ u == cross(v, u)
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def from_axis_angle(axis: Array, angle: Array) -> Array:
    """
    Rotation matrix for a rotation of ``angle`` about a unit ``axis``.

    Unlike an exponential map over an arbitrary axis-angle vector, the axis is
    known to be unit length, so Rodrigues' formula has no singular branch and
    stays smooth for automatic differentiation at ``angle == 0``.

    Args:
        axis: (3,) unit rotation axis
        angle: scalar rotation angle in radians

    Returns:
        (3, 3) rotation matrix
    """
    K = skew_symmetric(axis)
    I = jnp.eye(3, dtype=K.dtype)
    return I + jnp.sin(angle) * K + (1.0 - jnp.cos(angle)) * (K @ K)


def from_quaternion(quaternion: Array) -> Array:
    """
    Convert a quaternion to a rotation matrix.

    The quaternion need not be unit length; it is normalized first so that
    the result is always a proper rotation.

    Args:
        quaternion: (..., 4) quaternion in (w, x, y, z) format

    Returns:
        (..., 3, 3) rotation matrix
    """
    quaternion = quaternion / jnp.linalg.norm(quaternion, axis=-1, keepdims=True)
    w, x, y, z = jnp.moveaxis(quaternion, -1, 0)

    xx, yy, zz = x*x, y*y, z*z
    wx, wy, wz = w*x, w*y, w*z
    xy, xz, yz = x*y, x*z, y*z

    return jnp.stack([
        jnp.stack([1 - 2*(yy + zz), 2*(xy - wz), 2*(xz + wy)], axis=-1),
        jnp.stack([2*(xy + wz), 1 - 2*(xx + zz), 2*(yz - wx)], axis=-1),
        jnp.stack([2*(xz - wy), 2*(yz + wx), 1 - 2*(xx + yy)], axis=-1)
    ], axis=-2)


def to_quaternion(matrix: Array) -> Array:
    """
    Convert a rotation matrix to a unit quaternion with non-negative w.

    Picks whichever of the four standard extraction formulas has the
    largest pivot, which keeps the conversion well conditioned for every
    rotation including those close to 180 degrees.

    Args:
        matrix: (3, 3) rotation matrix

    Returns:
        (4,) quaternion in (w, x, y, z) format
    """
    m = matrix
    trace = m[0, 0] + m[1, 1] + m[2, 2]

    # Candidates scaled by 4*w, 4*x, 4*y and 4*z respectively
    candidates = jnp.stack([
        jnp.stack([1.0 + trace, m[2, 1] - m[1, 2], m[0, 2] - m[2, 0], m[1, 0] - m[0, 1]]),
        jnp.stack([m[2, 1] - m[1, 2], 1.0 + m[0, 0] - m[1, 1] - m[2, 2], m[0, 1] + m[1, 0], m[0, 2] + m[2, 0]]),
        jnp.stack([m[0, 2] - m[2, 0], m[0, 1] + m[1, 0], 1.0 - m[0, 0] + m[1, 1] - m[2, 2], m[1, 2] + m[2, 1]]),
        jnp.stack([m[1, 0] - m[0, 1], m[0, 2] + m[2, 0], m[1, 2] + m[2, 1], 1.0 - m[0, 0] - m[1, 1] + m[2, 2]]),
    ])
    pivots = jnp.array([candidates[0, 0], candidates[1, 1], candidates[2, 2], candidates[3, 3]])
    quaternion = candidates[jnp.argmax(pivots)]
    quaternion = quaternion / jnp.linalg.norm(quaternion)

    return jnp.where(quaternion[0] < 0, -quaternion, quaternion)


def quaternion_multiply(q1: Array, q2: Array) -> Array:
    """Hamilton product q1 * q2 of two (w, x, y, z) quaternions."""
    w1, v1 = q1[0], q1[1:]
    w2, v2 = q2[0], q2[1:]
    w = w1 * w2 - jnp.dot(v1, v2)
    v = w1 * v2 + w2 * v1 + jnp.cross(v1, v2)
    return jnp.concatenate([w[None], v])


def quaternion_rate_matrix(quaternion: Array) -> Array:
    """
    Matrix N(q) relating body angular velocity to quaternion rate.

    With ``w_B`` the angular velocity expressed in the rotating frame,
    ``qdot = 0.5 * N(q) @ w_B`` is the time derivative of ``q * [0, w_B]``.
    N satisfies ``N(q).T @ N(q) == |q|^2 I``, which provides the left inverse
    used to recover angular velocity from a quaternion rate.

    Args:
        quaternion: (4,) quaternion in (w, x, y, z) format

    Returns:
        (4, 3) matrix
    """
    w, v = quaternion[0], quaternion[1:]
    return jnp.concatenate([
        -v[None, :],
        w * jnp.eye(3, dtype=quaternion.dtype) + skew_symmetric(v),
    ], axis=0)


def angular_velocity_to_quaternion_rate(quaternion: Array, w_B: Array) -> Array:
    """Quaternion time derivative for body-frame angular velocity ``w_B``."""
    return 0.5 * quaternion_multiply(quaternion, jnp.concatenate([jnp.zeros(1, dtype=w_B.dtype), w_B]))


def quaternion_rate_to_angular_velocity(quaternion: Array, quaternion_dot: Array) -> Array:
    """
    Body-frame angular velocity from a quaternion time derivative.

    This is the exact left inverse of ``angular_velocity_to_quaternion_rate``
    for any non-zero quaternion, unit length or not. Components of
    ``quaternion_dot`` along ``quaternion`` itself (a change of norm) carry no
    rotation and are discarded.
    """
    N = quaternion_rate_matrix(quaternion)
    return 2.0 * (N.T @ quaternion_dot) / jnp.dot(quaternion, quaternion)
