"""Dynamics Engine: equations of motion of a multibody tree.

The equations of motion are

    M(q) @ vdot + C(q, v) = g(q) + B @ u + tau_damping(v)

where ``M`` is the mass matrix, ``C`` the Coriolis, centrifugal and
gyroscopic bias, ``g`` the gravity generalized forces, ``B`` the actuation
matrix and ``tau_damping`` the joint viscous damping.

``M`` is assembled with the composite-rigid-body algorithm and the bias terms
with the recursive Newton-Euler algorithm, both running over the tree in
body coordinates, so no full body Jacobians are ever formed. ``vdot`` comes
from a Cholesky solve of the symmetric positive-definite ``M``.

The underscore-prefixed kernels take raw arrays and are pure, so they can be
traced by ``jax.jit`` and differentiated by ``jax.jacfwd``; the public
functions validate their inputs first.
"""

from typing import Optional

import jax
import jax.numpy as jnp
import jax.scipy.linalg
import numpy as np
from jax import Array

from .core import MultibodyModel, MultibodyState
from .exceptions import SingularMassMatrixError
from .kinematics import _body_poses, calc_tree_kinematics
from .state_mapping import _velocity_to_qdot
from .transforms import se3, spatial


def _inverse_dynamics(model: MultibodyModel, q: Array, v: Array, vdot: Array, gravity: Array) -> Array:
    """Recursive Newton-Euler: generalized forces producing ``vdot``.

    Gravity enters as a fictitious upward acceleration of the world, so the
    result equals ``M @ vdot + C(q, v) - g(q)``.
    """
    order = model.topological_order()
    kinematics = calc_tree_kinematics(model, q, v)
    a_world = jnp.concatenate([-gravity, jnp.zeros(3)]).astype(q.dtype)

    accelerations = [None] * model.num_bodies()
    forces = [None] * model.num_bodies()

    # Root to leaves: body accelerations and the net forces they require
    for body_index in order[1:]:
        k = kinematics[body_index]
        joint = model.get_inboard_joint(body_index)
        parent = joint.parent_body.index
        a_parent = a_world if parent == 0 else accelerations[parent]

        v_joint = joint.get_velocities(v)
        a = k.Xup @ a_parent + k.S @ joint.get_velocities(vdot) + spatial.motion_cross(k.V) @ (k.S @ v_joint)
        I = model.get_body(body_index).spatial_inertia.as_matrix()

        accelerations[body_index] = a
        forces[body_index] = I @ a + spatial.force_cross(k.V) @ (I @ k.V)

    # Leaves to root: project onto joint axes and pass the rest inboard
    tau = jnp.zeros(model.num_velocities(), dtype=q.dtype)
    for body_index in reversed(order[1:]):
        k = kinematics[body_index]
        joint = model.get_inboard_joint(body_index)
        if joint.num_velocities:
            start = joint.velocity_start
            tau = tau.at[start:start + joint.num_velocities].set(k.S.T @ forces[body_index])
        parent = joint.parent_body.index
        if parent != 0:
            forces[parent] = forces[parent] + se3.coadjoint(k.X_PB) @ forces[body_index]

    return tau


def _mass_matrix(model: MultibodyModel, q: Array) -> Array:
    """Composite-rigid-body algorithm."""
    order = model.topological_order()
    num_velocities = model.num_velocities()
    kinematics = calc_tree_kinematics(model, q, jnp.zeros(num_velocities, dtype=q.dtype))

    composite = [None] * model.num_bodies()
    for body_index in order[1:]:
        composite[body_index] = model.get_body(body_index).spatial_inertia.as_matrix()
    for body_index in reversed(order[1:]):
        parent = model.get_parent_body_index(body_index)
        if parent != 0:
            k = kinematics[body_index]
            composite[parent] = composite[parent] + se3.coadjoint(k.X_PB) @ composite[body_index] @ k.Xup

    M = jnp.zeros((num_velocities, num_velocities), dtype=q.dtype)
    for body_index in order[1:]:
        joint = model.get_inboard_joint(body_index)
        if not joint.num_velocities:
            continue
        rows = slice(joint.velocity_start, joint.velocity_start + joint.num_velocities)

        F = composite[body_index] @ kinematics[body_index].S
        M = M.at[rows, rows].set(kinematics[body_index].S.T @ F)

        # Walk towards the root filling the off-diagonal blocks
        ancestor = body_index
        while model.get_parent_body_index(ancestor) != 0:
            F = se3.coadjoint(kinematics[ancestor].X_PB) @ F
            ancestor = model.get_parent_body_index(ancestor)
            ancestor_joint = model.get_inboard_joint(ancestor)
            if ancestor_joint.num_velocities:
                cols = slice(ancestor_joint.velocity_start, ancestor_joint.velocity_start + ancestor_joint.num_velocities)
                block = kinematics[ancestor].S.T @ F
                M = M.at[cols, rows].set(block)
                M = M.at[rows, cols].set(block.T)

    return M


def _damping_forces(model: MultibodyModel, v: Array) -> Array:
    tau = jnp.zeros(model.num_velocities(), dtype=v.dtype)
    for joint in model.joints:
        if joint.num_velocities:
            start = joint.velocity_start
            tau = tau.at[start:start + joint.num_velocities].set(
                joint.calc_damping_forces(joint.get_velocities(v))
            )
    return tau


def _actuation_matrix(model: MultibodyModel) -> Array:
    B = np.zeros((model.num_velocities(), model.num_actuators()))
    for actuator in model.actuators:
        B[actuator.velocity_index, actuator.index] = 1.0
    return jnp.asarray(B)


def _generalized_acceleration(model: MultibodyModel, q: Array, v: Array, u: Array) -> Array:
    if model.num_velocities() == 0:
        return jnp.zeros(0, dtype=q.dtype)
    M = _mass_matrix(model, q)
    rhs = (
        _actuation_matrix(model) @ u
        + _damping_forces(model, v)
        - _inverse_dynamics(model, q, v, jnp.zeros_like(v), model.gravity)
    )
    return jax.scipy.linalg.cho_solve(jax.scipy.linalg.cho_factor(M), rhs)


def _time_derivatives(model: MultibodyModel, q: Array, v: Array, u: Array) -> Array:
    vdot = _generalized_acceleration(model, q, v, u)
    return jnp.concatenate([_velocity_to_qdot(model, q, v), vdot])


def _throw_if_singular(vdot: Array) -> None:
    try:
        finite = bool(jnp.all(jnp.isfinite(vdot)))
    except jax.errors.ConcretizationTypeError:
        # Abstract under jit; the check runs again on concrete results.
        return
    if not finite:
        raise SingularMassMatrixError(
            "Solving M(q) @ vdot = rhs produced non-finite accelerations; the mass matrix is not "
            "positive definite (is every moving body given positive mass and inertia?)"
        )


def _as_actuation(model: MultibodyModel, actuation, operation: str) -> Array:
    num_actuators = model.num_actuators()
    if actuation is None:
        return jnp.zeros(num_actuators)
    u = jnp.atleast_1d(jnp.asarray(actuation, dtype=float))
    if u.shape != (num_actuators,):
        raise ValueError(f"{operation}(): expected {num_actuators} actuation inputs, got shape {u.shape}")
    return u


def calc_mass_matrix(model: MultibodyModel, state: MultibodyState) -> Array:
    """Mass matrix ``M(q)`` of shape (num_velocities, num_velocities)."""
    model.check_state(state, "calc_mass_matrix")
    return _mass_matrix(model, state.q)


def calc_bias_term(model: MultibodyModel, state: MultibodyState) -> Array:
    """Coriolis, centrifugal and gyroscopic generalized forces ``C(q, v)``."""
    model.check_state(state, "calc_bias_term")
    return _inverse_dynamics(model, state.q, state.v, jnp.zeros_like(state.v), jnp.zeros(3))


def calc_gravity_generalized_forces(model: MultibodyModel, state: MultibodyState) -> Array:
    """Generalized forces ``g(q)`` exerted by gravity."""
    model.check_state(state, "calc_gravity_generalized_forces")
    zeros = jnp.zeros_like(state.v)
    return -_inverse_dynamics(model, state.q, zeros, zeros, model.gravity)


def calc_inverse_dynamics(model: MultibodyModel, state: MultibodyState, vdot: Array) -> Array:
    """Generalized forces ``M @ vdot + C - g`` needed to produce ``vdot``."""
    model.check_state(state, "calc_inverse_dynamics")
    vdot = jnp.asarray(vdot, dtype=float)
    if vdot.shape != state.v.shape:
        raise ValueError(f"calc_inverse_dynamics(): expected vdot of shape {state.v.shape}, got {vdot.shape}")
    return _inverse_dynamics(model, state.q, state.v, vdot, model.gravity)


def calc_actuation_matrix(model: MultibodyModel) -> Array:
    """Selection matrix ``B`` of shape (num_velocities, num_actuators)."""
    model.require_finalized("calc_actuation_matrix")
    return _actuation_matrix(model)


def calc_generalized_acceleration(
    model: MultibodyModel, state: MultibodyState, actuation: Optional[Array] = None
) -> Array:
    """Solve the equations of motion for ``vdot``.

    Args:
        model: Finalized model.
        state: State snapshot.
        actuation: Inputs of shape (num_actuators,); zero when omitted.

    Returns:
        vdot of shape (num_velocities,).

    Raises:
        SingularMassMatrixError: If the mass matrix cannot be factorized.
    """
    model.check_state(state, "calc_generalized_acceleration")
    u = _as_actuation(model, actuation, "calc_generalized_acceleration")
    vdot = _generalized_acceleration(model, state.q, state.v, u)
    _throw_if_singular(vdot)
    return vdot


def calc_time_derivatives(
    model: MultibodyModel, state: MultibodyState, actuation: Optional[Array] = None
) -> Array:
    """Time derivative of the continuous state ``[q; v]``.

    Args:
        model: Finalized model.
        state: State snapshot.
        actuation: Inputs of shape (num_actuators,); zero when omitted.

    Returns:
        ``[qdot; vdot]`` of shape (num_multibody_states,).

    Raises:
        LifecycleError: If the model is not finalized.
        SingularMassMatrixError: If the mass matrix cannot be factorized.
    """
    model.check_state(state, "calc_time_derivatives")
    u = _as_actuation(model, actuation, "calc_time_derivatives")
    xdot = _time_derivatives(model, state.q, state.v, u)
    _throw_if_singular(xdot)
    return xdot


def calc_kinetic_energy(model: MultibodyModel, state: MultibodyState) -> Array:
    """Total kinetic energy, summed body by body."""
    model.check_state(state, "calc_kinetic_energy")
    energy = jnp.zeros((), dtype=state.q.dtype)
    for body_index, k in enumerate(calc_tree_kinematics(model, state.q, state.v)):
        if k is not None:
            I = model.get_body(body_index).spatial_inertia.as_matrix()
            energy = energy + 0.5 * k.V @ (I @ k.V)
    return energy


def calc_potential_energy(model: MultibodyModel, state: MultibodyState) -> Array:
    """Gravitational potential energy relative to the world origin."""
    model.check_state(state, "calc_potential_energy")
    X_WB = _body_poses(model, state.q)
    energy = jnp.zeros((), dtype=state.q.dtype)
    for body in model.bodies[1:]:
        p_WBcm = se3.apply(X_WB[body.index], body.spatial_inertia.com)
        energy = energy - body.spatial_inertia.mass * jnp.dot(model.gravity, p_WBcm)
    return energy
