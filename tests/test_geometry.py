"""Tests for geometry registration and frame pose reporting."""

import jax.numpy as jnp
import numpy as np
import pytest

from jax_multibody.core import FrameId, MultibodyModel, MultibodyState, SpatialInertia
from jax_multibody.exceptions import DuplicateNameError, LifecycleError, NoGeometryRegisteredError, NotFoundError
from jax_multibody.geometry import (
    FrameIdVector,
    FramePoseVector,
    calc_frame_ids,
    calc_frame_poses,
    get_body_frame_id,
    num_moving_frames,
)
from jax_multibody.kinematics import calc_body_poses_in_world


def test_registered_geometry_counts(acrobot_with_geometry):
    model = acrobot_with_geometry
    assert model.geometry_source_is_registered()
    assert model.num_visual_geometries() == 3
    assert num_moving_frames(model) == 2

    world_geometry = model.visual_geometries[0]
    assert world_geometry.is_anchored
    assert world_geometry.name == "base"
    assert not model.visual_geometries[1].is_anchored


def test_frame_ids_follow_bodies(acrobot_with_geometry):
    model = acrobot_with_geometry
    link1 = model.get_body_by_name("Link1")
    link2 = model.get_body_by_name("Link2")

    frame_ids = calc_frame_ids(model)
    assert isinstance(frame_ids, FrameIdVector)
    assert frame_ids.source_id == model.get_source_id()
    assert frame_ids.size == 2
    assert frame_ids.frame_ids == (get_body_frame_id(model, link1.index), get_body_frame_id(model, link2.index))
    assert frame_ids.get_index(get_body_frame_id(model, link2.index)) == 1
    assert len(set(frame_ids.frame_ids)) == 2


def test_frame_poses_match_kinematics(acrobot_with_geometry):
    model = acrobot_with_geometry
    state = MultibodyState(q=jnp.array([0.5, -1.25]), v=jnp.zeros(2))
    X_WB = calc_body_poses_in_world(model, state)

    poses = calc_frame_poses(model, state)
    assert isinstance(poses, FramePoseVector)
    assert poses.poses.shape == (2, 4, 4)
    assert poses.frame_ids == calc_frame_ids(model).frame_ids
    for body_name in ("Link1", "Link2"):
        body = model.get_body_by_name(body_name)
        frame_id = get_body_frame_id(model, body.index)
        np.testing.assert_allclose(poses.get_pose(frame_id), X_WB[body.index], atol=1e-12)
        np.testing.assert_allclose(poses.as_dict()[frame_id], X_WB[body.index], atol=1e-12)


def test_world_body_has_no_frame(acrobot_with_geometry):
    with pytest.raises(NoGeometryRegisteredError, match="Body 'WorldBody' does not have geometry registered with it."):
        get_body_frame_id(acrobot_with_geometry, 0)


@pytest.mark.parametrize("body_index", [7, -1])
def test_frame_id_of_unknown_body(acrobot_with_geometry, body_index):
    with pytest.raises(NotFoundError, match=f"index {body_index}"):
        get_body_frame_id(acrobot_with_geometry, body_index)


def test_unknown_frame_lookup(acrobot_with_geometry):
    poses = calc_frame_poses(acrobot_with_geometry, acrobot_with_geometry.create_default_state())
    with pytest.raises(NotFoundError):
        poses.get_pose(FrameId(-1))


def test_welded_bodies_do_not_move():
    """Bodies welded to the world are left out of the moving frames."""
    model = MultibodyModel()
    model.register_as_source()
    base = model.add_rigid_body("base", SpatialInertia.solid_box(10.0, (1.0, 1.0, 0.2)))
    arm = model.add_rigid_body("arm", SpatialInertia.solid_sphere(1.0, 0.1))
    model.add_weld_joint("base_weld", model.world_body, None, base, None)
    model.add_revolute_joint("arm_pin", base, None, arm, None)
    model.register_visual_geometry(base, shape="box")
    model.register_visual_geometry(arm, shape="sphere")
    model.register_visual_geometry(arm, shape="cylinder")
    model.finalize()

    assert model.num_visual_geometries() == 3
    # Both arm geometries share one frame
    assert model.visual_geometries[1].frame_id == model.visual_geometries[2].frame_id
    assert num_moving_frames(model) == 1
    assert calc_frame_ids(model).frame_ids == (get_body_frame_id(model, arm.index),)


def test_model_without_geometry(acrobot):
    assert not acrobot.geometry_source_is_registered()
    with pytest.raises(NoGeometryRegisteredError):
        calc_frame_ids(acrobot)
    with pytest.raises(NoGeometryRegisteredError, match="Link1"):
        get_body_frame_id(acrobot, acrobot.get_body_by_name("Link1").index)


def test_geometry_requires_source_registration():
    model = MultibodyModel()
    body = model.add_rigid_body("body", SpatialInertia.solid_sphere(1.0, 0.1))
    with pytest.raises(NoGeometryRegisteredError, match="register_as_source"):
        model.register_visual_geometry(body)
    model.register_as_source()
    source_id = model.get_source_id()
    with pytest.raises(DuplicateNameError, match="already registered"):
        model.register_as_source()
    assert model.get_source_id() == source_id


def test_frame_queries_require_finalize():
    model = MultibodyModel()
    model.register_as_source()
    with pytest.raises(LifecycleError, match="calc_frame_ids"):
        calc_frame_ids(model)
