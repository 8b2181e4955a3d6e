"""State Mapper: generalized velocities <-> time derivatives of positions.

The two spaces differ for joints whose positions use a redundant
parametrization, such as the orientation quaternion of a floating joint.
Each joint maps its own slice; the full vectors are assembled in state
order. ``map_qdot_to_velocity`` is a left inverse of
``map_velocity_to_qdot`` for every joint type.
"""

import jax.numpy as jnp
from jax import Array

from .core import MultibodyModel, MultibodyState


def _joints_in_state_order(model: MultibodyModel):
    return [model.get_inboard_joint(b) for b in model.topological_order()[1:]]


def _velocity_to_qdot(model: MultibodyModel, q: Array, v: Array) -> Array:
    pieces = [
        joint.map_velocity_to_qdot(joint.get_positions(q), joint.get_velocities(v))
        for joint in _joints_in_state_order(model)
    ]
    return jnp.concatenate(pieces) if pieces else jnp.zeros(0, dtype=q.dtype)


def _qdot_to_velocity(model: MultibodyModel, q: Array, qdot: Array) -> Array:
    pieces = [
        joint.map_qdot_to_velocity(joint.get_positions(q), joint.get_positions(qdot))
        for joint in _joints_in_state_order(model)
    ]
    return jnp.concatenate(pieces) if pieces else jnp.zeros(0, dtype=q.dtype)


def map_velocity_to_qdot(model: MultibodyModel, state: MultibodyState, v: Array) -> Array:
    """Map generalized velocities to the time derivative of ``q``.

    Args:
        model: Finalized model.
        state: State snapshot providing the configuration ``q``.
        v: Generalized velocities of shape (num_velocities,).

    Returns:
        qdot of shape (num_positions,).
    """
    model.check_state(state, "map_velocity_to_qdot")
    v = jnp.asarray(v, dtype=state.q.dtype)
    if v.shape != (model.num_velocities(),):
        raise ValueError(f"map_velocity_to_qdot(): expected v of shape ({model.num_velocities()},), got {v.shape}")
    return _velocity_to_qdot(model, state.q, v)


def map_qdot_to_velocity(model: MultibodyModel, state: MultibodyState, qdot: Array) -> Array:
    """Map the time derivative of ``q`` to generalized velocities.

    Args:
        model: Finalized model.
        state: State snapshot providing the configuration ``q``.
        qdot: Position derivatives of shape (num_positions,).

    Returns:
        v of shape (num_velocities,).
    """
    model.check_state(state, "map_qdot_to_velocity")
    qdot = jnp.asarray(qdot, dtype=state.q.dtype)
    if qdot.shape != (model.num_positions(),):
        raise ValueError(f"map_qdot_to_velocity(): expected qdot of shape ({model.num_positions()},), got {qdot.shape}")
    return _qdot_to_velocity(model, state.q, qdot)
