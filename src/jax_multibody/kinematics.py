"""Kinematics Engine: body poses, spatial velocities and Jacobians.

Bodies are visited once each in topological order, starting at the world
body whose pose is the identity. Each body's world pose is its parent's
world pose composed with the inboard joint's parent-to-child transform, and
its spatial velocity is the parent's velocity transported to the body plus
the joint's contribution ``S(q) @ v_joint``.
"""

from typing import Dict, List, NamedTuple, Optional

import jax
import jax.numpy as jnp
from jax import Array

from .core import MultibodyModel, MultibodyState
from .exceptions import NotFoundError
from .transforms import se3


class BodyKinematics(NamedTuple):
    """Per-body quantities of one tree pass, all in the body frame B.

    Attributes:
        X_PB: (4, 4) pose of B in its parent body frame P.
        Xup: (6, 6) motion transform from P coordinates to B coordinates.
        S: (6, nv_joint) inboard joint motion subspace, expressed in B about Bo.
        V: (6,) spatial velocity of B in the world, expressed in B.
    """
    X_PB: Array
    Xup: Array
    S: Array
    V: Array


def calc_tree_kinematics(model: MultibodyModel, q: Array, v: Array) -> List[Optional[BodyKinematics]]:
    """Root-to-leaf pass shared by the kinematics and dynamics engines.

    Args:
        model: Finalized model.
        q: Generalized positions of shape (num_positions,).
        v: Generalized velocities of shape (num_velocities,).

    Returns:
        List indexed by body index; the world entry is ``None``.
    """
    result: List[Optional[BodyKinematics]] = [None] * model.num_bodies()
    V_world = jnp.zeros(6, dtype=q.dtype)

    for body_index in model.topological_order()[1:]:
        joint = model.get_inboard_joint(body_index)
        q_joint = joint.get_positions(q)
        v_joint = joint.get_velocities(v)

        X_PB = joint.calc_parent_to_child_transform(q_joint)
        Xup = se3.adjoint(se3.inverse(X_PB))
        # Joint subspace is expressed in M; re-express it in B about Bo.
        S = se3.adjoint(joint.X_BM) @ joint.motion_subspace(q_joint)

        parent = result[joint.parent_body.index]
        V_parent = V_world if parent is None else parent.V
        V = Xup @ V_parent + S @ v_joint

        result[body_index] = BodyKinematics(X_PB=X_PB, Xup=Xup, S=S, V=V)

    return result


def _body_poses(model: MultibodyModel, q: Array) -> Array:
    X_WB = [jnp.eye(4, dtype=q.dtype)] * model.num_bodies()
    for body_index in model.topological_order()[1:]:
        joint = model.get_inboard_joint(body_index)
        X_PB = joint.calc_parent_to_child_transform(joint.get_positions(q))
        X_WB[body_index] = X_WB[joint.parent_body.index] @ X_PB
    return jnp.stack(X_WB)


def calc_body_poses_in_world(model: MultibodyModel, state: MultibodyState) -> Array:
    """Compute the world pose of every body.

    Args:
        model: Finalized model.
        state: State snapshot.

    Returns:
        Array of shape (num_bodies, 4, 4) indexed by body index; entry 0 is
        the identity pose of the world body.
    """
    model.check_state(state, "calc_body_poses_in_world")
    return _body_poses(model, state.q)


def _spatial_velocities_in_world(model: MultibodyModel, q: Array, v: Array) -> Array:
    X_WB = _body_poses(model, q)
    V_WB = [jnp.zeros(6, dtype=q.dtype)] * model.num_bodies()
    for body_index, body_kinematics in enumerate(calc_tree_kinematics(model, q, v)):
        if body_kinematics is not None:
            V_WB[body_index] = se3.rotate_spatial_vector(se3.get_rotation(X_WB[body_index]), body_kinematics.V)
    return jnp.stack(V_WB)


def calc_body_spatial_velocities_in_world(model: MultibodyModel, state: MultibodyState) -> Array:
    """Compute the spatial velocity of every body in the world frame.

    Returns:
        Array of shape (num_bodies, 6) with rows ``[v_WBo; w_WB]`` expressed
        in the world frame; row 0 (world) is zero.
    """
    model.check_state(state, "calc_body_spatial_velocities_in_world")
    return _spatial_velocities_in_world(model, state.q, state.v)


def forward_kinematics(model: MultibodyModel, state: MultibodyState) -> Dict[str, Array]:
    """Compute forward kinematics for all bodies.

    Returns:
        Dictionary mapping body names to their 4x4 world poses
    """
    X_WB = calc_body_poses_in_world(model, state)
    return {body.name: X_WB[body.index] for body in model.bodies}


def calc_body_jacobian(model: MultibodyModel, state: MultibodyState, body_name: str) -> Array:
    """Compute the 6D spatial-velocity Jacobian of a body.

    Spatial velocity is linear in ``v``, so differentiating the velocity
    pass with respect to ``v`` yields the exact Jacobian.

    Args:
        model: Finalized model.
        state: State snapshot; only ``q`` affects the result.
        body_name: Name of the target body.

    Returns:
        (6, num_velocities) matrix J with ``J @ v == V_WB`` expressed in the
        world frame.
    """
    model.check_state(state, "calc_body_jacobian")
    if not model.has_body_named(body_name):
        raise NotFoundError(f"Body '{body_name}' not found in model")
    body_index = model.get_body_by_name(body_name).index

    def body_velocity(v: Array) -> Array:
        return _spatial_velocities_in_world(model, state.q, v)[body_index]

    return jax.jacfwd(body_velocity)(state.v)
