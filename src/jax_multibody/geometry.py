"""Geometry Bridge: world poses of moving bodies keyed by frame id.

A geometry or visualization collaborator identifies each moving body by the
``FrameId`` allocated when geometry was first registered on it. The bridge
reports which frames this model drives and computes their world poses for a
given state. Bodies welded to the world never move and are left out, as is
the world body itself, which never receives a frame.
"""

from typing import Tuple

import jax.numpy as jnp
from flax import struct
from jax import Array

from .core import FrameId, MultibodyModel, MultibodyState, SourceId
from .exceptions import NoGeometryRegisteredError, NotFoundError
from .kinematics import calc_body_poses_in_world


@struct.dataclass
class FrameIdVector:
    """The frames a geometry source drives, in a fixed order."""
    source_id: SourceId = struct.field(pytree_node=False)
    frame_ids: Tuple[FrameId, ...] = struct.field(pytree_node=False)

    @property
    def size(self) -> int:
        return len(self.frame_ids)

    def get_index(self, frame_id: FrameId) -> int:
        try:
            return self.frame_ids.index(frame_id)
        except ValueError:
            raise NotFoundError(f"Frame {frame_id} is not driven by source {self.source_id}") from None


@struct.dataclass
class FramePoseVector:
    """World poses of the frames of a ``FrameIdVector``, in the same order.

    Attributes:
        poses: Array of shape (num_frames, 4, 4).
    """
    source_id: SourceId = struct.field(pytree_node=False)
    frame_ids: Tuple[FrameId, ...] = struct.field(pytree_node=False)
    poses: Array

    @property
    def size(self) -> int:
        return len(self.frame_ids)

    def get_pose(self, frame_id: FrameId) -> Array:
        try:
            return self.poses[self.frame_ids.index(frame_id)]
        except ValueError:
            raise NotFoundError(f"Frame {frame_id} is not driven by source {self.source_id}") from None

    def as_dict(self):
        return {frame_id: self.poses[i] for i, frame_id in enumerate(self.frame_ids)}


def _require_source(model: MultibodyModel, operation: str) -> SourceId:
    model.require_finalized(operation)
    source_id = model.get_source_id()
    if source_id is None:
        raise NoGeometryRegisteredError(
            f"'{operation}()' requires the model to be registered as a geometry source"
        )
    return source_id


def get_body_frame_id(model: MultibodyModel, body_index: int) -> FrameId:
    """Frame id associated with a body.

    Raises:
        NotFoundError: If ``body_index`` does not name a body of ``model``.
        NoGeometryRegisteredError: If the body has no frame, which is always
            the case for the world body.
    """
    if not 0 <= body_index < model.num_bodies():
        raise NotFoundError(f"There is no body with index {body_index} in this model")
    frame_id = model.get_body_frame_id_if_exists(body_index)
    if frame_id is None:
        raise NoGeometryRegisteredError(
            f"Body '{model.get_body(body_index).name}' does not have geometry registered with it."
        )
    return frame_id


def _moving_bodies(model: MultibodyModel):
    return [
        body_index
        for body_index in model.topological_order()[1:]
        if model.get_body_frame_id_if_exists(body_index) is not None and not model.is_anchored(body_index)
    ]


def num_moving_frames(model: MultibodyModel) -> int:
    """Number of frames whose poses ``calc_frame_poses`` reports."""
    _require_source(model, "num_moving_frames")
    return len(_moving_bodies(model))


def calc_frame_ids(model: MultibodyModel) -> FrameIdVector:
    """Frame ids of the moving bodies, in topological order."""
    source_id = _require_source(model, "calc_frame_ids")
    frame_ids = tuple(model.get_body_frame_id_if_exists(b) for b in _moving_bodies(model))
    return FrameIdVector(source_id=source_id, frame_ids=frame_ids)


def calc_frame_poses(model: MultibodyModel, state: MultibodyState) -> FramePoseVector:
    """World poses of the moving frames, ordered as ``calc_frame_ids``."""
    source_id = _require_source(model, "calc_frame_poses")
    X_WB = calc_body_poses_in_world(model, state)
    bodies = _moving_bodies(model)
    frame_ids = tuple(model.get_body_frame_id_if_exists(b) for b in bodies)
    poses = X_WB[jnp.array(bodies, dtype=jnp.int32)] if bodies else jnp.zeros((0, 4, 4))
    return FramePoseVector(source_id=source_id, frame_ids=frame_ids, poses=poses)
