"""URDF parser for loading multibody models.

Links become rigid bodies with the mass properties of their ``<inertial>``
element, joints become the matching joint variant with the joint origin as
the parent-side frame F and the child link frame as M. A root link named
``world`` is mapped onto the model's world body; any other root is welded
to the world, or left floating when ``floating_base`` is set.
"""

import logging
from typing import Dict, Optional

import numpy as np
from lxml import etree

from jax_multibody.core import MultibodyModel, RigidBody, SpatialInertia
from jax_multibody.transforms import se3

logger = logging.getLogger(__name__)

_SHAPE_TAGS = ("box", "cylinder", "sphere", "capsule", "mesh")


def load_urdf(
    urdf_path: str,
    *,
    gravity=(0.0, 0.0, -9.81),
    floating_base: bool = False,
    add_actuators: bool = True,
    register_geometry: bool = False,
    finalize: bool = True,
) -> MultibodyModel:
    """Load a URDF file into a MultibodyModel.

    Args:
        urdf_path: Path to the URDF file to load.
        gravity: Gravity vector of the new model.
        floating_base: Leave a root link other than ``world`` free floating
            instead of welding it to the world.
        add_actuators: Add an actuator named ``"<joint>_actuator"`` for every
            revolute, continuous or prismatic joint whose ``<limit>`` does
            not declare ``effort="0"``.
        register_geometry: Register the model as a geometry source and add
            every ``<visual>`` element as visual geometry.
        finalize: Finalize the model before returning it.

    Returns:
        MultibodyModel: The loaded model.

    Raises:
        ValueError: If the file does not describe a single tree, or uses an
            unsupported joint type.
    """
    tree = etree.parse(urdf_path)
    root = tree.getroot()
    robot_name = root.get('name', 'robot')

    model = MultibodyModel(gravity=gravity)
    if register_geometry:
        model.register_as_source(robot_name)

    # Links
    bodies: Dict[str, RigidBody] = {}
    for link in root.findall('link'):
        link_name = link.get('name')
        if link_name == 'world':
            bodies[link_name] = model.world_body
        else:
            bodies[link_name] = model.add_rigid_body(link_name, _parse_inertial(link.find('inertial')))
        if register_geometry:
            for visual in link.findall('visual'):
                model.register_visual_geometry(
                    bodies[link_name],
                    X_BG=_parse_origin(visual.find('origin')),
                    shape=_parse_shape(visual),
                    name=visual.get('name'),
                )

    # Joints
    child_links = set()
    for joint_elem in root.findall('joint'):
        joint_name = joint_elem.get('name')
        joint_type = joint_elem.get('type')
        parent_name = joint_elem.find('parent').get('link')
        child_name = joint_elem.find('child').get('link')
        for link_name in (parent_name, child_name):
            if link_name not in bodies:
                raise ValueError(f"Joint '{joint_name}' references unknown link '{link_name}'")
        child_links.add(child_name)

        parent, child = bodies[parent_name], bodies[child_name]
        X_PF = _parse_origin(joint_elem.find('origin'))
        axis = _parse_axis(joint_elem.find('axis'))
        damping = _parse_damping(joint_elem.find('dynamics'))

        if joint_type in ('revolute', 'continuous'):
            joint = model.add_revolute_joint(joint_name, parent, X_PF, child, None, axis=axis, damping=damping)
        elif joint_type == 'prismatic':
            joint = model.add_prismatic_joint(joint_name, parent, X_PF, child, None, axis=axis, damping=damping)
        elif joint_type == 'fixed':
            joint = model.add_weld_joint(joint_name, parent, X_PF, child, None)
        elif joint_type == 'floating':
            joint = model.add_quaternion_floating_joint(joint_name, parent, X_PF, child, None)
        else:
            raise ValueError(f"Unsupported joint type '{joint_type}' for joint '{joint_name}'")

        if add_actuators and joint.num_velocities == 1 and _is_actuated(joint_elem.find('limit')):
            model.add_joint_actuator(f"{joint_name}_actuator", joint)

    # Find root link (not a child of any joint)
    root_links = [name for name in bodies if name not in child_links]
    if len(root_links) != 1:
        raise ValueError(f"Expected exactly one root link, found: {root_links}")
    root_link = root_links[0]
    if root_link != 'world' and not floating_base:
        model.add_weld_joint(f"{root_link}_weld", model.world_body, None, bodies[root_link], None)

    logger.info(
        "Loaded URDF '%s' from %s: %d links, %d actuators",
        robot_name, urdf_path, len(bodies), model.num_actuators(),
    )
    if finalize:
        model.finalize()
    return model


def _parse_floats(text: Optional[str], default: str) -> np.ndarray:
    return np.array([float(x) for x in (text or default).split()])


def _parse_origin(origin_elem) -> np.ndarray:
    """Pose from an ``<origin xyz=... rpy=...>`` element (identity if absent)."""
    if origin_elem is None:
        return np.eye(4)
    xyz = _parse_floats(origin_elem.get('xyz'), '0 0 0')
    rpy = _parse_floats(origin_elem.get('rpy'), '0 0 0')
    return np.asarray(se3.from_position_and_rotation(xyz, _rpy_to_rotation_matrix(rpy)))


def _parse_axis(axis_elem) -> np.ndarray:
    if axis_elem is None:
        return np.array([1.0, 0.0, 0.0])  # URDF default axis
    return _parse_floats(axis_elem.get('xyz'), '1 0 0')


def _parse_damping(dynamics_elem) -> float:
    if dynamics_elem is None:
        return 0.0
    return float(dynamics_elem.get('damping', '0'))


def _is_actuated(limit_elem) -> bool:
    if limit_elem is None:
        return True
    return float(limit_elem.get('effort', '1')) != 0.0


def _parse_shape(visual_elem) -> str:
    geometry = visual_elem.find('geometry')
    if geometry is not None:
        for tag in _SHAPE_TAGS:
            if geometry.find(tag) is not None:
                return tag
    return "unknown"


def _parse_inertial(inertial_elem) -> SpatialInertia:
    """Spatial inertia about the link frame from an ``<inertial>`` element.

    The URDF inertia tensor is given about the center of mass in the
    inertial frame; it is rotated into the link frame.
    """
    if inertial_elem is None:
        return SpatialInertia.zero()

    X_BI = _parse_origin(inertial_elem.find('origin'))
    mass_elem = inertial_elem.find('mass')
    mass = float(mass_elem.get('value')) if mass_elem is not None else 0.0

    inertia_elem = inertial_elem.find('inertia')
    I_I = np.zeros((3, 3))
    if inertia_elem is not None:
        ixx, ixy, ixz, iyy, iyz, izz = (
            float(inertia_elem.get(key, '0')) for key in ('ixx', 'ixy', 'ixz', 'iyy', 'iyz', 'izz')
        )
        I_I = np.array([[ixx, ixy, ixz], [ixy, iyy, iyz], [ixz, iyz, izz]])

    R_BI = X_BI[:3, :3]
    return SpatialInertia.from_rotational_inertia(mass, X_BI[:3, 3], R_BI @ I_I @ R_BI.T)


def _rpy_to_rotation_matrix(rpy: np.ndarray) -> np.ndarray:
    """Convert roll-pitch-yaw angles to rotation matrix.

    Args:
        rpy: Array of [roll, pitch, yaw] angles in radians.

    Returns:
        3x3 rotation matrix R = R_z(yaw) @ R_y(pitch) @ R_x(roll).
    """
    roll, pitch, yaw = rpy

    R_x = np.array([
        [1, 0, 0],
        [0, np.cos(roll), -np.sin(roll)],
        [0, np.sin(roll), np.cos(roll)]
    ])

    R_y = np.array([
        [np.cos(pitch), 0, np.sin(pitch)],
        [0, 1, 0],
        [-np.sin(pitch), 0, np.cos(pitch)]
    ])

    R_z = np.array([
        [np.cos(yaw), -np.sin(yaw), 0],
        [np.sin(yaw), np.cos(yaw), 0],
        [0, 0, 1]
    ])

    return R_z @ R_y @ R_x
