"""MultibodyModel: the registry of bodies, joints and actuators.

A model goes through exactly two phases. While ``OPEN`` it accepts new
bodies, joints, actuators and geometry; ``finalize()`` then fixes the
topology, assigns every joint its slice of the state vectors and moves the
model to ``FINALIZED``, after which it is read-only and may be shared freely
between threads. Every public method is guarded for the phase it belongs to.
"""

import enum
import functools
import itertools
import logging
from collections import deque
from typing import Dict, List, Optional, Tuple, Type, TypeVar

import jax
import jax.numpy as jnp

from ..exceptions import (
    AlreadyFinalizedError,
    DuplicateNameError,
    InvalidReferenceError,
    LifecycleError,
    NoGeometryRegisteredError,
    NotFoundError,
    TopologyError,
    TypeMismatchError,
)
from ..transforms import se3
from .actuators import JointActuator
from .bodies import WORLD_BODY_NAME, RigidBody, SpatialInertia
from .identifiers import FrameId, SourceId, VisualGeometry
from .joints import (
    Joint,
    PrismaticJoint,
    QuaternionFloatingJoint,
    RevoluteJoint,
    WeldJoint,
)
from .state import MultibodyState

logger = logging.getLogger(__name__)

Array = jax.Array
JointT = TypeVar("JointT", bound=Joint)

_MODEL_IDS = itertools.count(1)


class ModelPhase(enum.Enum):
    OPEN = "open"
    FINALIZED = "finalized"


def _pre_finalize(method):
    """Restrict ``method`` to the OPEN phase."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._phase is not ModelPhase.OPEN:
            raise LifecycleError.post_finalize(method.__name__)
        return method(self, *args, **kwargs)
    return wrapper


def _post_finalize(method):
    """Restrict ``method`` to the FINALIZED phase."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._phase is not ModelPhase.FINALIZED:
            raise LifecycleError.pre_finalize(method.__name__)
        return method(self, *args, **kwargs)
    return wrapper


class MultibodyModel:
    """A tree of rigid bodies connected by joints.

    The world body is created with the model at index 0. Bodies, joints and
    actuators receive stable ordinal indices in the order they are added and
    are addressable by name within their category.

    Args:
        gravity: (3,) gravitational acceleration expressed in the world frame.
    """

    def __init__(self, gravity=(0.0, 0.0, -9.81)):
        self._id = next(_MODEL_IDS)
        self._phase = ModelPhase.OPEN
        self.gravity = jnp.asarray(gravity, dtype=float).reshape(3)

        self._bodies: List[RigidBody] = []
        self._joints: List[Joint] = []
        self._actuators: List[JointActuator] = []
        self._body_names: Dict[str, int] = {}
        self._joint_names: Dict[str, int] = {}
        self._actuator_names: Dict[str, int] = {}
        # Child body index -> index of its inboard joint
        self._inboard_joints: Dict[int, int] = {}

        # Populated by finalize()
        self._topological_order: Tuple[int, ...] = ()
        self._anchored_bodies: frozenset = frozenset()
        self._num_positions = 0
        self._num_velocities = 0

        self._source_id: Optional[SourceId] = None
        self._body_frame_ids: Dict[int, FrameId] = {}
        self._visual_geometries: List[VisualGeometry] = []

        self._add_body(WORLD_BODY_NAME, SpatialInertia.zero())

    # Lifecycle

    @property
    def phase(self) -> ModelPhase:
        return self._phase

    @property
    def is_finalized(self) -> bool:
        return self._phase is ModelPhase.FINALIZED

    def require_finalized(self, operation: str) -> None:
        """Raise ``LifecycleError`` unless the model is finalized."""
        if self._phase is not ModelPhase.FINALIZED:
            raise LifecycleError.pre_finalize(operation)

    def finalize(self) -> None:
        """Lock the topology and compute the state layout.

        Bodies without an inboard joint are connected to the world with a
        ``QuaternionFloatingJoint`` named ``"<body>_floating"``. Bodies are
        then ordered breadth first from the world, and joints take consecutive
        position and velocity slices in that order.

        Raises:
            AlreadyFinalizedError: If the model was already finalized.
            TopologyError: If some bodies form a loop disconnected from the world.
            DuplicateNameError: If the name of an implicit floating joint is taken.
        """
        if self._phase is ModelPhase.FINALIZED:
            raise AlreadyFinalizedError(
                "finalize() has already been called on this model; "
                "a model can only be finalized once."
            )

        free_bodies = [b for b in self._bodies[1:] if b.index not in self._inboard_joints]
        self._check_connected(free_bodies)
        taken = [f"{b.name}_floating" for b in free_bodies if f"{b.name}_floating" in self._joint_names]
        if taken:
            raise DuplicateNameError(
                f"Cannot add floating joints {taken} for free bodies; the names are already used by other joints"
            )

        world = self.world_body
        for body in free_bodies:
            self._register_joint(QuaternionFloatingJoint(f"{body.name}_floating", world, None, body, None))
            logger.debug("Body '%s' has no inboard joint; added a floating joint", body.name)

        children: Dict[int, List[Joint]] = {}
        for joint in self._joints:
            children.setdefault(joint.parent_body.index, []).append(joint)

        order = [0]
        queue = deque([0])
        while queue:
            for joint in children.get(queue.popleft(), []):
                order.append(joint.child_body.index)
                queue.append(joint.child_body.index)
        self._topological_order = tuple(order)

        position_start = 0
        velocity_start = 0
        anchored = {0}
        for body_index in order[1:]:
            joint = self.get_inboard_joint(body_index)
            joint._position_start = position_start
            joint._velocity_start = velocity_start
            position_start += joint.num_positions
            velocity_start += joint.num_velocities
            if isinstance(joint, WeldJoint) and joint.parent_body.index in anchored:
                anchored.add(body_index)
        self._num_positions = position_start
        self._num_velocities = velocity_start
        self._anchored_bodies = frozenset(anchored)

        self._phase = ModelPhase.FINALIZED
        logger.info(
            "Finalized multibody model: %d bodies, %d joints, %d actuators, "
            "%d positions, %d velocities",
            len(self._bodies), len(self._joints), len(self._actuators),
            self._num_positions, self._num_velocities,
        )

    def _check_connected(self, free_bodies: List[RigidBody]) -> None:
        reachable = {0} | {b.index for b in free_bodies}
        frontier = list(reachable)
        while frontier:
            parent = frontier.pop()
            for joint in self._joints:
                child = joint.child_body.index
                if joint.parent_body.index == parent and child not in reachable:
                    reachable.add(child)
                    frontier.append(child)
        unreachable = [b.name for b in self._bodies if b.index not in reachable]
        if unreachable:
            raise TopologyError(
                f"Bodies {unreachable} form a kinematic loop that is not connected to the world"
            )

    # Registration

    def _add_body(self, name: str, spatial_inertia: SpatialInertia) -> RigidBody:
        if name in self._body_names:
            raise DuplicateNameError(f"This model already contains a body named '{name}'")
        body = RigidBody(len(self._bodies), name, spatial_inertia, self._id)
        self._bodies.append(body)
        self._body_names[name] = body.index
        return body

    @_pre_finalize
    def add_rigid_body(self, name: str, spatial_inertia: Optional[SpatialInertia] = None) -> RigidBody:
        """Add a rigid body; it is connected by a later ``add_joint`` or at finalize.

        Args:
            name: Name unique among the bodies of this model.
            spatial_inertia: Mass properties; massless when omitted, which is
                only meaningful for purely kinematic use.

        Returns:
            The new body.
        """
        body = self._add_body(name, spatial_inertia if spatial_inertia is not None else SpatialInertia.zero())
        logger.debug("Added body '%s' with index %d", name, body.index)
        return body

    def _check_body(self, body: RigidBody, operation: str) -> None:
        if (
            body.model_id != self._id
            or body.index >= len(self._bodies)
            or self._bodies[body.index] is not body
        ):
            raise InvalidReferenceError(
                f"Body '{body.name}' passed to '{operation}()' does not belong to this model"
            )

    def _register_joint(self, joint: Joint) -> Joint:
        if joint._index is not None:
            raise InvalidReferenceError(f"Joint '{joint.name}' was already added to a model")
        self._check_body(joint.parent_body, "add_joint")
        self._check_body(joint.child_body, "add_joint")
        if joint.name in self._joint_names:
            raise DuplicateNameError(f"This model already contains a joint named '{joint.name}'")
        child = joint.child_body
        if child.is_world:
            raise TopologyError(f"Joint '{joint.name}' cannot have the world body as its child")
        if child.index in self._inboard_joints:
            existing = self._joints[self._inboard_joints[child.index]]
            raise TopologyError(
                f"Body '{child.name}' already has inboard joint '{existing.name}'; "
                f"joint '{joint.name}' would close a kinematic loop"
            )
        joint._index = len(self._joints)
        self._joints.append(joint)
        self._joint_names[joint.name] = joint._index
        self._inboard_joints[child.index] = joint._index
        return joint

    @_pre_finalize
    def add_joint(self, joint: JointT) -> JointT:
        """Add a joint between two bodies of this model.

        Raises:
            InvalidReferenceError: If either body belongs to another model.
            TopologyError: If the child is the world or already has an inboard joint.
            DuplicateNameError: If the joint name is taken.
        """
        self._register_joint(joint)
        logger.debug(
            "Added %s '%s' between '%s' and '%s'",
            joint.type_name, joint.name, joint.parent_body.name, joint.child_body.name,
        )
        return joint

    @_pre_finalize
    def add_revolute_joint(
        self, name: str, parent: RigidBody, X_PF, child: RigidBody, X_BM, axis=(0.0, 0.0, 1.0), damping: float = 0.0
    ) -> RevoluteJoint:
        return self.add_joint(RevoluteJoint(name, parent, X_PF, child, X_BM, axis=axis, damping=damping))

    @_pre_finalize
    def add_prismatic_joint(
        self, name: str, parent: RigidBody, X_PF, child: RigidBody, X_BM, axis=(1.0, 0.0, 0.0), damping: float = 0.0
    ) -> PrismaticJoint:
        return self.add_joint(PrismaticJoint(name, parent, X_PF, child, X_BM, axis=axis, damping=damping))

    @_pre_finalize
    def add_weld_joint(self, name: str, parent: RigidBody, X_PF, child: RigidBody, X_BM) -> WeldJoint:
        return self.add_joint(WeldJoint(name, parent, X_PF, child, X_BM))

    @_pre_finalize
    def add_quaternion_floating_joint(
        self, name: str, parent: RigidBody, X_PF, child: RigidBody, X_BM
    ) -> QuaternionFloatingJoint:
        return self.add_joint(QuaternionFloatingJoint(name, parent, X_PF, child, X_BM))

    @_pre_finalize
    def add_joint_actuator(self, name: str, joint: Joint) -> JointActuator:
        """Add an actuator driving the single degree of freedom of ``joint``."""
        if joint._index is None or joint._index >= len(self._joints) or self._joints[joint._index] is not joint:
            raise InvalidReferenceError(
                f"Joint '{joint.name}' passed to 'add_joint_actuator()' does not belong to this model"
            )
        if joint.num_velocities != 1:
            raise ValueError(
                f"Actuator '{name}' requires a single-DOF joint, but {joint.type_name} "
                f"'{joint.name}' has {joint.num_velocities} velocities"
            )
        if name in self._actuator_names:
            raise DuplicateNameError(f"This model already contains an actuator named '{name}'")
        actuator = JointActuator(len(self._actuators), name, joint)
        self._actuators.append(actuator)
        self._actuator_names[name] = actuator.index
        logger.debug("Added actuator '%s' on joint '%s'", name, joint.name)
        return actuator

    # Geometry registration

    @_pre_finalize
    def register_as_source(self, name: str = "multibody_model") -> SourceId:
        """Register this model as a source of geometry and return its id.

        Raises:
            DuplicateNameError: If the model is already registered.
        """
        if self._source_id is not None:
            raise DuplicateNameError("This model is already registered as a geometry source")
        self._source_id = SourceId.get_new_id()
        logger.debug("Registered geometry source '%s' with id %d", name, self._source_id.value)
        return self._source_id

    @_pre_finalize
    def register_visual_geometry(
        self, body: RigidBody, X_BG=None, shape: str = "", name: Optional[str] = None
    ) -> VisualGeometry:
        """Attach a visual geometry to ``body``.

        Geometry on the world body is anchored and gets no frame; the first
        geometry on any other body allocates that body's ``FrameId``.
        """
        if self._source_id is None:
            raise NoGeometryRegisteredError(
                "This model is not registered as a geometry source; call register_as_source() first"
            )
        self._check_body(body, "register_visual_geometry")

        frame_id = None
        if not body.is_world:
            frame_id = self._body_frame_ids.get(body.index)
            if frame_id is None:
                frame_id = FrameId.get_new_id()
                self._body_frame_ids[body.index] = frame_id

        X_BG = se3.identity() if X_BG is None else jnp.asarray(X_BG, dtype=float)
        if name is None:
            name = f"{body.name}_visual_{len(self._visual_geometries)}"
        geometry = VisualGeometry(body.index, name, shape, X_BG, frame_id)
        self._visual_geometries.append(geometry)
        return geometry

    def geometry_source_is_registered(self) -> bool:
        return self._source_id is not None

    def get_source_id(self) -> Optional[SourceId]:
        return self._source_id

    def num_visual_geometries(self) -> int:
        return len(self._visual_geometries)

    @property
    def visual_geometries(self) -> Tuple[VisualGeometry, ...]:
        return tuple(self._visual_geometries)

    def get_body_frame_id_if_exists(self, body_index: int) -> Optional[FrameId]:
        return self._body_frame_ids.get(body_index)

    # Lookup

    @property
    def world_body(self) -> RigidBody:
        return self._bodies[0]

    @property
    def bodies(self) -> Tuple[RigidBody, ...]:
        return tuple(self._bodies)

    @property
    def joints(self) -> Tuple[Joint, ...]:
        return tuple(self._joints)

    @property
    def actuators(self) -> Tuple[JointActuator, ...]:
        return tuple(self._actuators)

    def get_body(self, index: int) -> RigidBody:
        return self._bodies[index]

    def get_joint(self, index: int) -> Joint:
        return self._joints[index]

    def get_joint_actuator(self, index: int) -> JointActuator:
        return self._actuators[index]

    def has_body_named(self, name: str) -> bool:
        return name in self._body_names

    def has_joint_named(self, name: str) -> bool:
        return name in self._joint_names

    def has_joint_actuator_named(self, name: str) -> bool:
        return name in self._actuator_names

    def get_body_by_name(self, name: str) -> RigidBody:
        try:
            return self._bodies[self._body_names[name]]
        except KeyError:
            raise NotFoundError(f"There is no body named '{name}' in the model") from None

    def get_joint_by_name(self, name: str, joint_type: Optional[Type[JointT]] = None) -> JointT:
        """Look up a joint by name, optionally checking its variant.

        Args:
            name: Joint name.
            joint_type: Expected joint class, e.g. ``RevoluteJoint``.

        Raises:
            NotFoundError: If no joint has this name.
            TypeMismatchError: If the joint is not an instance of ``joint_type``.
        """
        try:
            joint = self._joints[self._joint_names[name]]
        except KeyError:
            raise NotFoundError(f"There is no joint named '{name}' in the model") from None
        if joint_type is not None and not isinstance(joint, joint_type):
            raise TypeMismatchError(
                f"Joint '{name}' is a {joint.type_name}, not a {joint_type.__name__}"
            )
        return joint

    def get_joint_actuator_by_name(self, name: str) -> JointActuator:
        try:
            return self._actuators[self._actuator_names[name]]
        except KeyError:
            raise NotFoundError(f"There is no joint actuator named '{name}' in the model") from None

    # Topology

    @_post_finalize
    def topological_order(self) -> Tuple[int, ...]:
        """Body indices ordered so that every parent precedes its children."""
        return self._topological_order

    def get_inboard_joint(self, body_index: int) -> Joint:
        try:
            return self._joints[self._inboard_joints[body_index]]
        except KeyError:
            raise NotFoundError(
                f"Body '{self._bodies[body_index].name}' has no inboard joint"
            ) from None

    def get_parent_body_index(self, body_index: int) -> int:
        return self.get_inboard_joint(body_index).parent_body.index

    @_post_finalize
    def is_anchored(self, body_index: int) -> bool:
        """Whether the body is welded to the world through weld joints only."""
        return body_index in self._anchored_bodies

    # Sizes

    def num_bodies(self) -> int:
        return len(self._bodies)

    def num_joints(self) -> int:
        return len(self._joints)

    def num_actuators(self) -> int:
        return len(self._actuators)

    @_post_finalize
    def num_actuated_dofs(self) -> int:
        return sum(a.joint.num_velocities for a in self._actuators)

    @_post_finalize
    def num_positions(self) -> int:
        return self._num_positions

    @_post_finalize
    def num_velocities(self) -> int:
        return self._num_velocities

    @_post_finalize
    def num_multibody_states(self) -> int:
        return self._num_positions + self._num_velocities

    # State

    @_post_finalize
    def create_default_state(self) -> MultibodyState:
        """Zero configuration: default joint positions and zero velocities."""
        q = [self.get_inboard_joint(b).default_positions() for b in self._topological_order[1:]]
        q = jnp.concatenate(q) if q else jnp.zeros(0)
        return MultibodyState(q=q, v=jnp.zeros(self._num_velocities), time=0.0)

    def check_state(self, state: MultibodyState, operation: str) -> None:
        """Validate that ``state`` matches this model's state layout."""
        self.require_finalized(operation)
        if state.q.shape != (self._num_positions,):
            raise ValueError(
                f"{operation}(): expected q of shape ({self._num_positions},), got {state.q.shape}"
            )
        if state.v.shape != (self._num_velocities,):
            raise ValueError(
                f"{operation}(): expected v of shape ({self._num_velocities},), got {state.v.shape}"
            )

    @_post_finalize
    def get_continuous_state(self, state: MultibodyState) -> Array:
        """The continuous state ``[q; v]`` of size ``num_multibody_states()``."""
        self.check_state(state, "get_continuous_state")
        return state.x

    def _get_free_body_joint(self, body: RigidBody, operation: str) -> QuaternionFloatingJoint:
        self._check_body(body, operation)
        joint = self._joints[self._inboard_joints[body.index]] if body.index in self._inboard_joints else None
        if not isinstance(joint, QuaternionFloatingJoint) or not joint.parent_body.is_world:
            raise TopologyError(f"Body '{body.name}' is not a free body")
        return joint

    @_post_finalize
    def set_free_body_pose(self, state: MultibodyState, body: RigidBody, X_WB: Array) -> MultibodyState:
        """Return a copy of ``state`` with the free body posed at ``X_WB``."""
        joint = self._get_free_body_joint(body, "set_free_body_pose")
        X_FM = se3.inverse(joint.X_PF) @ jnp.asarray(X_WB, dtype=float) @ joint.X_BM
        return joint.set_pose(state, X_FM)

    @_post_finalize
    def set_free_body_spatial_velocity(self, state: MultibodyState, body: RigidBody, V_WB: Array) -> MultibodyState:
        """Return a copy of ``state`` where the free body moves with ``V_WB``.

        Args:
            V_WB: Spatial velocity ``[v; w]`` of the body origin, expressed in
                the world frame.
        """
        joint = self._get_free_body_joint(body, "set_free_body_spatial_velocity")
        X_WB = joint.X_PF @ joint.get_pose(state) @ se3.inverse(joint.X_BM)
        # Velocity of M in F: shift from Bo to Mo, then re-express in F.
        V_WB = jnp.asarray(V_WB, dtype=float)
        p_BM_W = se3.get_rotation(X_WB) @ se3.get_position(joint.X_BM)
        V_WM = jnp.concatenate([V_WB[:3] + jnp.cross(V_WB[3:], p_BM_W), V_WB[3:]])
        R_FW = se3.get_rotation(se3.inverse(joint.X_PF))
        return joint.set_spatial_velocity(state, se3.rotate_spatial_vector(R_FW, V_WM))

    def __repr__(self) -> str:
        return (
            f"MultibodyModel(phase={self._phase.value}, bodies={len(self._bodies)}, "
            f"joints={len(self._joints)}, actuators={len(self._actuators)})"
        )
