"""Shared pytest fixtures."""

import numpy as np
import pytest

from cartesian_trajopt import MissingLink, MissingManipulator
from collision_check import ContactResult

HEADER = "# scan header\nx,y,z,i,j,k\n"


class FakeManipulator:
    """Three prismatic joints moving the held part in world x, y, z."""

    def __init__(self, name="manipulator", lower=None, upper=None):
        self.name = name
        self.joint_names = ["px", "py", "pz"]
        self.link_names = ["carriage", "part"]
        self.lower_limits = np.full(3, -np.inf) if lower is None else lower
        self.upper_limits = np.full(3, np.inf) if upper is None else upper

    def forward_kinematics(self, q, link_name):
        if link_name not in self.link_names:
            raise MissingLink(link_name)
        T = np.eye(4)
        T[:3, 3] = q[:3]
        return T


class FakeEnvironment:
    """Environment service double.

    ``collision_events`` is consumed one list per continuous check;
    ``contact_fn(q)`` supplies discrete contact distances.
    """

    def __init__(
        self,
        q=(0.1, -0.2, 0.3),
        target_xyz=(0.5, 0.0, 0.4),
        collision_events=None,
        contact_fn=None,
    ):
        self.q = np.array(q, dtype=float)
        self.manipulator = FakeManipulator()
        target = np.eye(4)
        target[:3, 3] = target_xyz
        self.links = {"grinder_frame": target}
        self.collision_events = list(collision_events or [])
        self.checked_trajectories = []
        self.contact_fn = contact_fn

    def get_manipulator(self, name):
        if name != self.manipulator.name:
            raise MissingManipulator(name)
        return self.manipulator

    def current_joint_values(self, name):
        self.get_manipulator(name)
        return self.q.copy()

    def link_transform(self, name):
        if name not in self.links:
            raise MissingLink(name)
        return self.links[name].copy()

    def set_state(self, joint_values):
        for name, value in joint_values.items():
            self.q[self.manipulator.joint_names.index(name)] = value

    def contact_distances(self, joint_names, link_names, q):
        if self.contact_fn is None:
            return []
        return self.contact_fn(np.asarray(q))

    def swept_contact_distances(self, joint_names, link_names, q_a, q_b):
        if self.contact_fn is None:
            return []
        a = self.contact_fn(np.asarray(q_a))
        b = self.contact_fn(np.asarray(q_b))
        return [ca if ca.distance < cb.distance else cb for ca, cb in zip(a, b)]

    def continuous_collision_check_trajectory(self, joint_names, link_names, trajectory):
        self.checked_trajectories.append(np.array(trajectory))
        if self.collision_events:
            return self.collision_events.pop(0)
        return []


def make_contact(step=0, distance=-0.01):
    return ContactResult("part", "obstacle", distance, step)


@pytest.fixture
def fake_env():
    """Fake environment at q = (0.1, -0.2, 0.3)."""
    return FakeEnvironment()


@pytest.fixture
def write_scan(tmp_path):
    """Write a scan file with the standard two header lines."""
    def _write(rows, name="scan.csv", header=HEADER):
        path = tmp_path / name
        path.write_text(header + "".join(f"{row}\n" for row in rows))
        return path

    return _write


@pytest.fixture
def workcell_env():
    """iiwa7 grinding workcell at the puzzle start pose."""
    from cartesian_trajopt import make_workcell_environment

    return make_workcell_environment()
