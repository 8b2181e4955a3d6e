"""Joint variants connecting a parent body P to a child body B.

Every joint relates two frames: F, fixed on the parent with pose ``X_PF``,
and M, fixed on the child with pose ``X_BM``. The joint's generalized
positions determine ``X_FM(q)`` and its generalized velocities the relative
spatial velocity of M in F. The set of variants is closed; they all provide
the same capability interface defined by ``Joint``:

- ``num_positions`` / ``num_velocities`` and, after the owning model is
  finalized, ``position_start`` / ``velocity_start`` into the state vectors,
- ``calc_transform(q)`` returning ``X_FM``,
- ``motion_subspace(q)`` returning the 6 x nv matrix ``S`` such that
  ``S @ v`` is the velocity of M in F, expressed in M about Mo,
- ``map_velocity_to_qdot`` / ``map_qdot_to_velocity``,
- ``calc_damping_forces(v)``.
"""

import abc
from typing import ClassVar, Optional

import jax
import jax.numpy as jnp
import numpy as np

from ..exceptions import LifecycleError
from ..transforms import se3, so3
from .bodies import RigidBody
from .state import MultibodyState

Array = jax.Array


def _as_pose(X: Optional[Array]) -> Array:
    if X is None:
        return jnp.eye(4)
    X = jnp.asarray(X, dtype=float)
    if X.shape != (4, 4):
        raise ValueError(f"Poses must be 4x4 homogeneous matrices, got shape {X.shape}")
    return X


def _as_unit_axis(axis, joint_name: str) -> Array:
    axis = np.asarray(axis, dtype=float).reshape(3)
    norm = np.linalg.norm(axis)
    if norm < 1e-12:
        raise ValueError(f"Joint '{joint_name}' has a zero-length axis")
    return jnp.asarray(axis / norm)


class Joint(abc.ABC):
    """Base class of all joint variants.

    Joints are created unattached; ``MultibodyModel.add_joint`` assigns the
    index and ``MultibodyModel.finalize`` the state slices.
    """

    num_positions: ClassVar[int]
    num_velocities: ClassVar[int]

    def __init__(
        self,
        name: str,
        parent: RigidBody,
        X_PF: Optional[Array],
        child: RigidBody,
        X_BM: Optional[Array],
    ):
        if parent is child:
            raise ValueError(f"Joint '{name}' connects body '{parent.name}' to itself")
        self._name = name
        self._parent = parent
        self._child = child
        self._X_PF = _as_pose(X_PF)
        self._X_BM = _as_pose(X_BM)
        self._index: Optional[int] = None
        self._position_start: Optional[int] = None
        self._velocity_start: Optional[int] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def index(self) -> int:
        if self._index is None:
            raise LifecycleError(f"Joint '{self._name}' has not been added to a model")
        return self._index

    @property
    def parent_body(self) -> RigidBody:
        return self._parent

    @property
    def child_body(self) -> RigidBody:
        return self._child

    @property
    def X_PF(self) -> Array:
        return self._X_PF

    @property
    def X_BM(self) -> Array:
        return self._X_BM

    @property
    def type_name(self) -> str:
        return type(self).__name__

    @property
    def position_start(self) -> int:
        if self._position_start is None:
            raise LifecycleError.pre_finalize("position_start")
        return self._position_start

    @property
    def velocity_start(self) -> int:
        if self._velocity_start is None:
            raise LifecycleError.pre_finalize("velocity_start")
        return self._velocity_start

    def get_positions(self, q: Array) -> Array:
        """This joint's slice of the full generalized-position vector."""
        start = self.position_start
        return q[start:start + self.num_positions]

    def get_velocities(self, v: Array) -> Array:
        """This joint's slice of the full generalized-velocity vector."""
        start = self.velocity_start
        return v[start:start + self.num_velocities]

    def calc_parent_to_child_transform(self, q_joint: Array) -> Array:
        """Pose ``X_PB`` of the child body frame in the parent body frame."""
        return self._X_PF @ self.calc_transform(q_joint) @ se3.inverse(self._X_BM)

    def calc_damping_forces(self, v_joint: Array) -> Array:
        return jnp.zeros(self.num_velocities)

    @abc.abstractmethod
    def default_positions(self) -> Array:
        """Generalized positions of the zero configuration."""

    @abc.abstractmethod
    def calc_transform(self, q_joint: Array) -> Array:
        """Pose ``X_FM`` of the child frame M in the parent frame F."""

    @abc.abstractmethod
    def motion_subspace(self, q_joint: Array) -> Array:
        """(6, num_velocities) matrix mapping joint velocities to V_FM_M."""

    def map_velocity_to_qdot(self, q_joint: Array, v_joint: Array) -> Array:
        return v_joint

    def map_qdot_to_velocity(self, q_joint: Array, qdot_joint: Array) -> Array:
        return qdot_joint

    def _set_positions(self, state: MultibodyState, values: Array) -> MultibodyState:
        start = self.position_start
        return state.replace(q=state.q.at[start:start + self.num_positions].set(values))

    def _set_velocities(self, state: MultibodyState, values: Array) -> MultibodyState:
        start = self.velocity_start
        return state.replace(v=state.v.at[start:start + self.num_velocities].set(values))

    def __repr__(self) -> str:
        return (
            f"{self.type_name}(name={self._name!r}, parent={self._parent.name!r}, "
            f"child={self._child.name!r})"
        )


class RevoluteJoint(Joint):
    """One rotational degree of freedom about an axis fixed in both F and M.

    The generalized position is the rotation angle in radians and the
    generalized velocity its rate. An optional viscous ``damping`` applies
    the torque ``-damping * angular_rate``.
    """

    num_positions = 1
    num_velocities = 1

    def __init__(self, name, parent, X_PF, child, X_BM, axis=(0.0, 0.0, 1.0), damping: float = 0.0):
        super().__init__(name, parent, X_PF, child, X_BM)
        if damping < 0:
            raise ValueError(f"Joint '{name}' damping must be non-negative, got {damping}")
        self.axis = _as_unit_axis(axis, name)
        self.damping = float(damping)

    def default_positions(self) -> Array:
        return jnp.zeros(1)

    def calc_transform(self, q_joint: Array) -> Array:
        return se3.from_rotation(so3.from_axis_angle(self.axis, q_joint[0]))

    def motion_subspace(self, q_joint: Array) -> Array:
        return jnp.concatenate([jnp.zeros(3), self.axis])[:, None]

    def calc_damping_forces(self, v_joint: Array) -> Array:
        return -self.damping * v_joint

    def get_angle(self, state: MultibodyState) -> Array:
        return state.q[self.position_start]

    def set_angle(self, state: MultibodyState, angle) -> MultibodyState:
        return self._set_positions(state, jnp.atleast_1d(angle))

    def get_angular_rate(self, state: MultibodyState) -> Array:
        return state.v[self.velocity_start]

    def set_angular_rate(self, state: MultibodyState, rate) -> MultibodyState:
        return self._set_velocities(state, jnp.atleast_1d(rate))


class PrismaticJoint(Joint):
    """One translational degree of freedom along an axis fixed in F and M."""

    num_positions = 1
    num_velocities = 1

    def __init__(self, name, parent, X_PF, child, X_BM, axis=(1.0, 0.0, 0.0), damping: float = 0.0):
        super().__init__(name, parent, X_PF, child, X_BM)
        if damping < 0:
            raise ValueError(f"Joint '{name}' damping must be non-negative, got {damping}")
        self.axis = _as_unit_axis(axis, name)
        self.damping = float(damping)

    def default_positions(self) -> Array:
        return jnp.zeros(1)

    def calc_transform(self, q_joint: Array) -> Array:
        return se3.from_translation(self.axis * q_joint[0])

    def motion_subspace(self, q_joint: Array) -> Array:
        return jnp.concatenate([self.axis, jnp.zeros(3)])[:, None]

    def calc_damping_forces(self, v_joint: Array) -> Array:
        return -self.damping * v_joint

    def get_translation(self, state: MultibodyState) -> Array:
        return state.q[self.position_start]

    def set_translation(self, state: MultibodyState, translation) -> MultibodyState:
        return self._set_positions(state, jnp.atleast_1d(translation))

    def get_translation_rate(self, state: MultibodyState) -> Array:
        return state.v[self.velocity_start]

    def set_translation_rate(self, state: MultibodyState, rate) -> MultibodyState:
        return self._set_velocities(state, jnp.atleast_1d(rate))


class WeldJoint(Joint):
    """Rigidly attaches the child to the parent; M coincides with F."""

    num_positions = 0
    num_velocities = 0

    def default_positions(self) -> Array:
        return jnp.zeros(0)

    def calc_transform(self, q_joint: Array) -> Array:
        return jnp.eye(4)

    def motion_subspace(self, q_joint: Array) -> Array:
        return jnp.zeros((6, 0))


class QuaternionFloatingJoint(Joint):
    """Six unconstrained degrees of freedom.

    Generalized positions are ``[qw, qx, qy, qz, x, y, z]``: the orientation
    of M in F as a quaternion followed by the position of Mo in F.
    Generalized velocities are ``[v; w]``, the translational velocity of Mo
    and the angular velocity of M, both measured in F and expressed in M.
    The quaternion need not stay unit length; rotations are computed from
    its normalized value.
    """

    num_positions = 7
    num_velocities = 6

    def default_positions(self) -> Array:
        return jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0])

    def calc_transform(self, q_joint: Array) -> Array:
        return se3.from_position_and_rotation(q_joint[4:], so3.from_quaternion(q_joint[:4]))

    def motion_subspace(self, q_joint: Array) -> Array:
        return jnp.eye(6)

    def map_velocity_to_qdot(self, q_joint: Array, v_joint: Array) -> Array:
        quaternion = q_joint[:4]
        R_FM = so3.from_quaternion(quaternion)
        quaternion_dot = so3.angular_velocity_to_quaternion_rate(quaternion, v_joint[3:])
        return jnp.concatenate([quaternion_dot, R_FM @ v_joint[:3]])

    def map_qdot_to_velocity(self, q_joint: Array, qdot_joint: Array) -> Array:
        quaternion = q_joint[:4]
        R_FM = so3.from_quaternion(quaternion)
        w_FM_M = so3.quaternion_rate_to_angular_velocity(quaternion, qdot_joint[:4])
        return jnp.concatenate([R_FM.T @ qdot_joint[4:], w_FM_M])

    def get_pose(self, state: MultibodyState) -> Array:
        """Pose ``X_FM`` stored in ``state``."""
        return self.calc_transform(self.get_positions(state.q))

    def set_pose(self, state: MultibodyState, X_FM: Array) -> MultibodyState:
        X_FM = _as_pose(X_FM)
        quaternion = so3.to_quaternion(se3.get_rotation(X_FM))
        return self._set_positions(state, jnp.concatenate([quaternion, se3.get_position(X_FM)]))

    def get_spatial_velocity(self, state: MultibodyState) -> Array:
        """Spatial velocity ``[v; w]`` of M in F, expressed in F."""
        R_FM = se3.get_rotation(self.get_pose(state))
        return se3.rotate_spatial_vector(R_FM, self.get_velocities(state.v))

    def set_spatial_velocity(self, state: MultibodyState, V_FM_F: Array) -> MultibodyState:
        """Store the spatial velocity ``[v; w]`` of M in F, expressed in F."""
        R_FM = se3.get_rotation(self.get_pose(state))
        V_FM_F = jnp.asarray(V_FM_F, dtype=float)
        return self._set_velocities(state, se3.rotate_spatial_vector(R_FM.T, V_FM_F))
