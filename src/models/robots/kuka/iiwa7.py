"""KUKA iiwa7 grinding workcell constants.

The arm holds a part on its flange and presents the part surface to a
stationary grinder. Kinematics follow the iiwa7 link lengths with
alternating z/y joint axes; collision geometry is a coarse sphere set.
"""

import numpy as np
import pinocchio as pin

MANIPULATOR = "manipulator"
HELD_LINK = "part"
STATIONARY_LINK = "grinder_frame"

JOINT_NAMES = [
    "joint_a1",
    "joint_a2",
    "joint_a3",
    "joint_a4",
    "joint_a5",
    "joint_a6",
    "joint_a7",
]

LINK_NAMES = [
    "link_1",
    "link_2",
    "link_3",
    "link_4",
    "link_5",
    "link_6",
    "link_7",
    "tool0",
    "part",
]

Q0_PUZZLE = np.array([-0.785398, 0.4, 0.0, -1.9, 0.0, 1.0, 0.0])

# (joint, axis, offset from previous joint [m], limit [rad])
_CHAIN = [
    ("joint_a1", "z", (0.0, 0.0, 0.1575), np.deg2rad(170)),
    ("joint_a2", "y", (0.0, 0.0, 0.2025), np.deg2rad(120)),
    ("joint_a3", "z", (0.0, 0.0, 0.2045), np.deg2rad(170)),
    ("joint_a4", "y", (0.0, 0.0, 0.2155), np.deg2rad(120)),
    ("joint_a5", "z", (0.0, 0.0, 0.1845), np.deg2rad(170)),
    ("joint_a6", "y", (0.0, 0.0, 0.2155), np.deg2rad(120)),
    ("joint_a7", "z", (0.0, 0.0, 0.0810), np.deg2rad(175)),
]

FLANGE_OFFSET = np.array([0.0, 0.0, 0.045])
PART_OFFSET = np.array([0.0, 0.0, 0.095])

# Grinder contact frame: z-axis points along +x world, away from the arm.
GRINDER_POSITION = np.array([0.65, 0.0, 0.45])
GRINDER_ROTATION = np.array([
    [0.0, 0.0, 1.0],
    [0.0, 1.0, 0.0],
    [-1.0, 0.0, 0.0],
])

# (link, sphere center in link frame [m], radius [m])
COLLISION_SPHERES = [
    ("base_link", (0.0, 0.0, 0.08), 0.10),
    ("link_1", (0.0, 0.0, 0.10), 0.08),
    ("link_2", (0.0, 0.0, 0.10), 0.08),
    ("link_3", (0.0, 0.0, 0.11), 0.07),
    ("link_4", (0.0, 0.0, 0.09), 0.07),
    ("link_5", (0.0, 0.0, 0.11), 0.06),
    ("link_6", (0.0, 0.0, 0.04), 0.06),
    ("link_7", (0.0, 0.0, 0.03), 0.045),
    ("part", (0.0, 0.0, 0.0), 0.04),
    ("grinder_frame", (0.0, 0.0, 0.09), 0.08),
]

ALLOWED_COLLISIONS = [
    ("base_link", "link_1"),
    ("base_link", "link_2"),
    ("link_1", "link_2"),
    ("link_2", "link_3"),
    ("link_3", "link_4"),
    ("link_4", "link_5"),
    ("link_5", "link_6"),
    ("link_5", "link_7"),
    ("link_6", "link_7"),
    ("link_6", "part"),
    ("link_7", "part"),
    ("part", "grinder_frame"),
]

GROUND_Z = 0.0


def build_workcell_model() -> pin.Model:
    """Build the workcell kinematic model.

    Frames: ``base_link``, one joint frame and one ``link_<k>`` body frame
    per joint, ``tool0`` on the flange, ``part`` held by the flange, and
    the world-fixed ``grinder_frame``.
    """
    model = pin.Model()
    joint_models = {"y": pin.JointModelRY, "z": pin.JointModelRZ}

    model.addBodyFrame("base_link", 0, pin.SE3.Identity(), -1)

    parent = 0
    limits = []
    for k, (name, axis, offset, limit) in enumerate(_CHAIN, start=1):
        placement = pin.SE3(np.eye(3), np.array(offset))
        parent = model.addJoint(parent, joint_models[axis](), placement, name)
        model.addJointFrame(parent, -1)
        model.addBodyFrame(f"link_{k}", parent, pin.SE3.Identity(), -1)
        limits.append(limit)

    model.addBodyFrame("tool0", parent, pin.SE3(np.eye(3), FLANGE_OFFSET), -1)
    model.addBodyFrame(HELD_LINK, parent, pin.SE3(np.eye(3), PART_OFFSET), -1)
    model.addBodyFrame(
        STATIONARY_LINK, 0,
        pin.SE3(GRINDER_ROTATION, GRINDER_POSITION), -1,
    )

    limits = np.array(limits)
    model.lowerPositionLimit = -limits
    model.upperPositionLimit = limits

    return model
