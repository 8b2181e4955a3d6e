"""Tests for linearization about operating points."""

import jax.numpy as jnp
import numpy as np
import pytest

from jax_multibody.core import MultibodyModel, MultibodyState, SpatialInertia
from jax_multibody.dynamics import calc_time_derivatives
from jax_multibody.exceptions import LifecycleError
from jax_multibody.linearization import LinearSystem, linearize

MASS, LENGTH, GRAVITY = 1.0, 0.5, 9.81


@pytest.mark.parametrize("theta, sign", [(0.0, -1.0), (np.pi, 1.0)])
def test_pendulum_equilibria(pendulum, theta, sign):
    """Hanging and inverted pendulum give the textbook A and B."""
    state = MultibodyState(q=jnp.array([theta]), v=jnp.array([0.0]))
    system = linearize(pendulum, state)

    assert isinstance(system, LinearSystem)
    assert system.num_states == 2
    assert system.num_inputs == 1
    np.testing.assert_allclose(system.A, [[0.0, 1.0], [sign * GRAVITY / LENGTH, 0.0]], atol=1e-12)
    np.testing.assert_allclose(system.B[:, 0], [0.0, 1.0 / (MASS * LENGTH**2)], atol=1e-12)
    np.testing.assert_allclose(system.x0, state.x)
    np.testing.assert_allclose(system.u0, [0.0])


def test_equilibrium_has_zero_derivatives(pendulum):
    state = MultibodyState(q=jnp.array([np.pi]), v=jnp.array([0.0]))
    np.testing.assert_allclose(calc_time_derivatives(pendulum, state), jnp.zeros(2), atol=1e-12)


def test_autodiff_matches_central_difference(acrobot):
    state = MultibodyState(q=jnp.array([0.4, -0.9]), v=jnp.array([1.2, 0.3]))
    u0 = jnp.array([0.5])
    exact = linearize(acrobot, state, u0)
    approx = linearize(acrobot, state, u0, method="central_difference")

    assert exact.A.shape == (4, 4)
    assert exact.B.shape == (4, 1)
    np.testing.assert_allclose(approx.A, exact.A, rtol=1e-6, atol=1e-6)
    np.testing.assert_allclose(approx.B, exact.B, rtol=1e-6, atol=1e-6)


def test_linearization_predicts_small_perturbations(acrobot):
    """A @ dx + B @ du approximates the change in xdot to second order."""
    state = MultibodyState(q=jnp.array([0.4, -0.9]), v=jnp.array([1.2, 0.3]))
    u0 = jnp.array([0.5])
    system = linearize(acrobot, state, u0)

    dx = 1e-5 * jnp.array([1.0, -2.0, 0.5, 3.0])
    du = jnp.array([2e-5])
    perturbed = MultibodyState.from_vector(state.x + dx, acrobot.num_positions())
    delta = calc_time_derivatives(acrobot, perturbed, u0 + du) - calc_time_derivatives(acrobot, state, u0)
    np.testing.assert_allclose(delta, system.A @ dx + system.B @ du, atol=1e-7)


def test_model_without_actuators():
    model = MultibodyModel()
    bob = model.add_rigid_body("bob", SpatialInertia.point_mass(MASS, (0.0, 0.0, -LENGTH)))
    model.add_revolute_joint("pin", model.world_body, None, bob, None, axis=(0, 1, 0))
    model.finalize()
    for method in ("autodiff", "central_difference"):
        system = linearize(model, model.create_default_state(), method=method)
        assert system.A.shape == (2, 2)
        assert system.B.shape == (2, 0)
        assert system.num_inputs == 0


def test_unknown_method(pendulum):
    with pytest.raises(ValueError, match="Unknown linearization method"):
        linearize(pendulum, pendulum.create_default_state(), method="forward_difference")


def test_linearize_requires_finalize():
    with pytest.raises(LifecycleError, match="linearize"):
        linearize(MultibodyModel(), MultibodyState(q=jnp.zeros(0), v=jnp.zeros(0)))
