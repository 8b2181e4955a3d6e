"""Tests for mapping between generalized velocities and position derivatives."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_multibody.core import MultibodyModel, MultibodyState, QuaternionFloatingJoint, SpatialInertia
from jax_multibody.state_mapping import map_qdot_to_velocity, map_velocity_to_qdot
from jax_multibody.transforms import se3, so3


def _posed_free_body_state(model):
    brick = model.get_body_by_name("Brick")
    axis = jnp.array([1.5, 2.0, 3.0]) / jnp.linalg.norm(jnp.array([1.5, 2.0, 3.0]))
    X_WB = se3.from_position_and_rotation(jnp.array([1.0, 2.0, 3.0]), so3.from_axis_angle(axis, jnp.pi / 3))
    state = model.set_free_body_pose(model.create_default_state(), brick, X_WB)
    return model.set_free_body_spatial_velocity(state, brick, jnp.array([-1.0, 4.0, -0.5, 1.0, 2.0, 3.0]))


def test_revolute_mapping_is_identity(acrobot):
    state = MultibodyState(q=jnp.array([0.3, -0.2]), v=jnp.array([1.0, 2.0]))
    np.testing.assert_allclose(map_velocity_to_qdot(acrobot, state, state.v), state.v)
    np.testing.assert_allclose(map_qdot_to_velocity(acrobot, state, state.v), state.v)


def test_free_body_round_trip(free_body):
    state = _posed_free_body_state(free_body)
    qdot = map_velocity_to_qdot(free_body, state, state.v)
    assert qdot.shape == (7,)
    v = map_qdot_to_velocity(free_body, state, qdot)
    assert v.shape == (6,)
    np.testing.assert_allclose(v, state.v, atol=1e-12)


def test_free_body_qdot_is_position_derivative(free_body):
    """Integrating qdot for a short time moves the body with its set velocity."""
    state = _posed_free_body_state(free_body)
    qdot = map_velocity_to_qdot(free_body, state, state.v)
    # Position rates are the world velocity of the body origin
    np.testing.assert_allclose(qdot[4:], [-1.0, 4.0, -0.5], atol=1e-12)
    # Quaternion rate is tangent to the unit sphere
    np.testing.assert_allclose(jnp.dot(qdot[:4], state.q[:4]), 0.0, atol=1e-12)


def test_mapping_with_non_unit_quaternion(free_body):
    state = _posed_free_body_state(free_body)
    state = state.replace(q=state.q.at[:4].multiply(1.7))
    qdot = map_velocity_to_qdot(free_body, state, state.v)
    np.testing.assert_allclose(map_qdot_to_velocity(free_body, state, qdot), state.v, atol=1e-12)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None)
def test_mixed_tree_round_trip(seed):
    """Floating base with a revolute child: v -> qdot -> v is the identity."""
    model = MultibodyModel()
    base = model.add_rigid_body("base", SpatialInertia.solid_box(5.0, (0.4, 0.3, 0.2)))
    arm = model.add_rigid_body("arm", SpatialInertia.solid_sphere(1.0, 0.05, com=(0.0, 0.0, -0.3)))
    model.add_revolute_joint("shoulder", base, None, arm, None, axis=(0, 1, 0))
    model.finalize()
    assert model.num_positions() == 8 and model.num_velocities() == 7

    key1, key2, key3 = jax.random.split(jax.random.PRNGKey(seed), 3)
    quat = jax.random.uniform(key1, (4,), minval=-1.0, maxval=1.0)
    q = jnp.concatenate([quat / jnp.linalg.norm(quat), jax.random.uniform(key2, (4,))])
    v = jax.random.uniform(key3, (7,), minval=-3.0, maxval=3.0)
    state = MultibodyState(q=q, v=v)

    np.testing.assert_allclose(
        map_qdot_to_velocity(model, state, map_velocity_to_qdot(model, state, v)), v, atol=1e-12
    )


def test_floating_joint_angular_velocity_in_child_frame(free_body):
    """Generalized angular velocity is expressed in the body frame."""
    joint = free_body.get_joint_by_name("Brick_floating", QuaternionFloatingJoint)
    state = _posed_free_body_state(free_body)
    R_WB = se3.get_rotation(joint.get_pose(state))
    np.testing.assert_allclose(R_WB @ state.v[3:], [1.0, 2.0, 3.0], atol=1e-12)
    np.testing.assert_allclose(joint.get_spatial_velocity(state), [-1.0, 4.0, -0.5, 1.0, 2.0, 3.0], atol=1e-12)


def test_wrong_sizes_are_rejected(free_body):
    state = free_body.create_default_state()
    with pytest.raises(ValueError, match="expected v of shape"):
        map_velocity_to_qdot(free_body, state, jnp.zeros(7))
    with pytest.raises(ValueError, match="expected qdot of shape"):
        map_qdot_to_velocity(free_body, state, jnp.zeros(6))
