"""Shared models and closed-form references for the test suite."""

from dataclasses import dataclass
from pathlib import Path

import jax.numpy as jnp
import numpy as np
import pytest

from jax_multibody.core import MultibodyModel, SpatialInertia
from jax_multibody.transforms import se3

FIXTURES = Path(__file__).parent / "fixtures"


@dataclass(frozen=True)
class AcrobotParameters:
    """Planar double pendulum actuated at the elbow (Spong's acrobot)."""
    m1: float = 1.0
    m2: float = 1.0
    l1: float = 1.0
    l2: float = 2.0
    lc1: float = 0.5
    lc2: float = 1.0
    Ic1: float = 0.083
    Ic2: float = 0.33
    g: float = 9.81
    b1: float = 0.0
    b2: float = 0.0


def build_acrobot(params: AcrobotParameters = AcrobotParameters(), register_geometry: bool = False) -> MultibodyModel:
    """Acrobot swinging in the world XY plane, gravity along -Y.

    Both joints rotate about Z. Link 1 hangs from the world origin and link 2
    from the tip of link 1; each link's center of mass lies along its -Y axis.
    """
    model = MultibodyModel(gravity=(0.0, -params.g, 0.0))
    link1 = model.add_rigid_body(
        "Link1",
        SpatialInertia.from_rotational_inertia(params.m1, (0.0, -params.lc1, 0.0), params.Ic1 * np.eye(3)),
    )
    link2 = model.add_rigid_body(
        "Link2",
        SpatialInertia.from_rotational_inertia(params.m2, (0.0, -params.lc2, 0.0), params.Ic2 * np.eye(3)),
    )
    model.add_revolute_joint("ShoulderJoint", model.world_body, None, link1, None, axis=(0, 0, 1), damping=params.b1)
    elbow = model.add_revolute_joint(
        "ElbowJoint", link1, se3.from_translation(jnp.array([0.0, -params.l1, 0.0])), link2, None,
        axis=(0, 0, 1), damping=params.b2,
    )
    model.add_joint_actuator("ElbowJoint", elbow)

    if register_geometry:
        model.register_as_source("acrobot")
        model.register_visual_geometry(model.world_body, shape="box", name="base")
        model.register_visual_geometry(link1, se3.from_translation(jnp.array([0.0, -params.lc1, 0.0])), "cylinder")
        model.register_visual_geometry(link2, se3.from_translation(jnp.array([0.0, -params.lc2, 0.0])), "cylinder")

    model.finalize()
    return model


def acrobot_time_derivatives(params: AcrobotParameters, x, u: float) -> np.ndarray:
    """Closed-form acrobot dynamics in plain numpy.

    Angles are measured from the hanging configuration; the elbow angle is
    relative to link 1.
    """
    theta1, theta2, theta1dot, theta2dot = x
    m2, l1, lc1, lc2, g = params.m2, params.l1, params.lc1, params.lc2, params.g
    I1 = params.Ic1 + params.m1 * lc1**2
    I2 = params.Ic2 + m2 * lc2**2
    c2, s1, s2 = np.cos(theta2), np.sin(theta1), np.sin(theta2)
    s12 = np.sin(theta1 + theta2)

    m12 = I2 + m2 * l1 * lc2 * c2
    M = np.array([[I1 + I2 + m2 * l1**2 + 2 * m2 * l1 * lc2 * c2, m12], [m12, I2]])
    C = np.array([
        -2 * m2 * l1 * lc2 * s2 * theta1dot * theta2dot - m2 * l1 * lc2 * s2 * theta2dot**2,
        m2 * l1 * lc2 * s2 * theta1dot**2,
    ])
    tau_g = np.array([
        -params.m1 * g * lc1 * s1 - m2 * g * (l1 * s1 + lc2 * s12),
        -m2 * g * lc2 * s12,
    ])
    tau_damping = -np.array([params.b1 * theta1dot, params.b2 * theta2dot])

    vdot = np.linalg.solve(M, tau_g - C + tau_damping + np.array([0.0, u]))
    return np.concatenate([[theta1dot, theta2dot], vdot])


def assert_relative_close(actual, desired, ulps: float = 16.0) -> None:
    """Elementwise |actual - desired| <= ulps * eps * max(|actual|, |desired|, 1)."""
    actual, desired = np.asarray(actual, dtype=np.float64), np.asarray(desired, dtype=np.float64)
    assert actual.shape == desired.shape
    scale = np.maximum(np.maximum(np.abs(actual), np.abs(desired)), 1.0)
    bound = ulps * np.finfo(np.float64).eps * scale
    error = np.abs(actual - desired)
    assert np.all(error <= bound), f"errors {error} exceed {bound}"


def build_pendulum(mass: float = 1.0, length: float = 0.5, gravity: float = 9.81) -> MultibodyModel:
    """Point-mass pendulum hinged about the world Y axis, hanging along -Z."""
    model = MultibodyModel(gravity=(0.0, 0.0, -gravity))
    arm = model.add_rigid_body("Arm", SpatialInertia.point_mass(mass, (0.0, 0.0, -length)))
    pin = model.add_revolute_joint("Pin", model.world_body, None, arm, None, axis=(0, 1, 0))
    model.add_joint_actuator("Torque", pin)
    model.finalize()
    return model


def build_free_body() -> MultibodyModel:
    """A single brick with no joint; finalize() gives it six degrees of freedom."""
    model = MultibodyModel(gravity=(0.0, 0.0, -9.81))
    model.add_rigid_body("Brick", SpatialInertia.solid_box(2.0, (0.3, 0.2, 0.1), com=(0.01, -0.02, 0.03)))
    model.finalize()
    return model


@pytest.fixture
def acrobot_params():
    return AcrobotParameters()


@pytest.fixture
def acrobot(acrobot_params):
    return build_acrobot(acrobot_params)


@pytest.fixture
def acrobot_with_geometry(acrobot_params):
    return build_acrobot(acrobot_params, register_geometry=True)


@pytest.fixture
def pendulum():
    return build_pendulum()


@pytest.fixture
def free_body():
    return build_free_body()
