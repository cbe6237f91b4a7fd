"""Planning environment: robot state, manipulator groups and collision queries.

``PlanningEnvironment`` is the single object the problem builder, the
solver and the orchestrator talk to. It owns the current joint state of
the whole model; manipulator groups address a subset of the joints.
"""

import logging
from dataclasses import dataclass
from typing import Mapping

import numpy as np

from collision_check import CollisionChecker, CollisionConfig, ContactResult
from kinematics import PinocchioKinematics
from models.robots.kuka import iiwa7

from .errors import MissingLink, MissingManipulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManipulatorGroup:
    """Named kinematic group, as declared in a semantic robot description.

    Attributes:
        name: Group name (e.g. ``"manipulator"``).
        joint_names: Joints planned for, in trajectory column order.
        link_names: Links moved by those joints (collision-active links).
    """

    name: str
    joint_names: tuple[str, ...]
    link_names: tuple[str, ...]


class Manipulator:
    """Kinematic descriptor of one manipulator group.

    Joints outside the group are held at the environment state captured
    when the descriptor was created.
    """

    def __init__(
        self,
        group: ManipulatorGroup,
        kinematics: PinocchioKinematics,
        base_configuration: np.ndarray,
    ):
        self.name = group.name
        self.joint_names = list(group.joint_names)
        self.link_names = list(group.link_names)
        self.kinematics = kinematics
        self._base_q = np.array(base_configuration, dtype=np.float64)
        self._idx = kinematics.q_indices(self.joint_names)
        self.lower_limits, self.upper_limits = kinematics.joint_limits(
            self.joint_names,
        )

    @property
    def num_joints(self) -> int:
        return len(self.joint_names)

    def full_configuration(self, q: np.ndarray) -> np.ndarray:
        """Embed group joint values (num_joints,) into a model configuration."""
        full = self._base_q.copy()
        full[self._idx] = q
        return full

    def forward_kinematics(self, q: np.ndarray, link_name: str) -> np.ndarray:
        """World pose of *link_name* at group configuration *q* (4, 4).

        Raises:
            MissingLink: If the link is not in the model.
        """
        if not self.kinematics.has_frame(link_name):
            raise MissingLink(link_name)
        return self.kinematics.frame_placement(
            self.full_configuration(q), link_name,
        )


class PlanningEnvironment:
    """Robot state plus kinematic and collision queries.

    Usage:
        kin = PinocchioKinematics.for_iiwa7_workcell()
        env = PlanningEnvironment(kin, [group], collision_checker)
        env.set_state({"joint_a1": -0.78})
        q = env.current_joint_values("manipulator")
    """

    def __init__(
        self,
        kinematics: PinocchioKinematics,
        groups: list[ManipulatorGroup],
        collision_checker: CollisionChecker | None = None,
    ):
        """Initialize environment at the model's neutral configuration.

        Args:
            kinematics: Kinematic model.
            groups: Manipulator groups available for planning.
            collision_checker: Collision queries; None disables them.

        Raises:
            MissingLink: If a group references an unknown link.
            KeyError: If a group references an unknown joint.
        """
        self.kinematics = kinematics
        self.collision_checker = collision_checker
        self._groups = {g.name: g for g in groups}
        self._q = kinematics.neutral()

        for group in groups:
            kinematics.q_indices(list(group.joint_names))
            for link in group.link_names:
                if not kinematics.has_frame(link):
                    raise MissingLink(link)

    @property
    def configuration(self) -> np.ndarray:
        """Full model configuration (nq,)."""
        return self._q.copy()

    def set_state(self, joint_values: Mapping[str, float]) -> None:
        """Set joint positions by name.

        Raises:
            KeyError: If a joint is not in the model.
        """
        names = list(joint_values)
        idx = self.kinematics.q_indices(names)
        self._q[idx] = [joint_values[name] for name in names]

    def get_manipulator(self, name: str) -> Manipulator:
        """Resolve a manipulator group.

        Raises:
            MissingManipulator: If no group has this name.
        """
        if name not in self._groups:
            raise MissingManipulator(name)
        return Manipulator(self._groups[name], self.kinematics, self._q)

    def current_joint_values(self, manipulator: str) -> np.ndarray:
        """Current positions of the group's joints (num_joints,)."""
        if manipulator not in self._groups:
            raise MissingManipulator(manipulator)
        idx = self.kinematics.q_indices(
            list(self._groups[manipulator].joint_names),
        )
        return self._q[idx].copy()

    def link_transform(self, link_name: str) -> np.ndarray:
        """World pose of a link at the current state (4, 4).

        Raises:
            MissingLink: If the link is not in the model.
        """
        if not self.kinematics.has_frame(link_name):
            raise MissingLink(link_name)
        return self.kinematics.frame_placement(self._q, link_name)

    def _full_trajectory(
        self,
        joint_names: list[str],
        trajectory: np.ndarray,
    ) -> np.ndarray:
        trajectory = np.atleast_2d(np.asarray(trajectory, dtype=np.float64))
        idx = self.kinematics.q_indices(list(joint_names))
        full = np.tile(self._q, (len(trajectory), 1))
        full[:, idx] = trajectory
        return full

    def contact_distances(
        self,
        joint_names: list[str],
        link_names: list[str],
        q: np.ndarray,
    ) -> list[ContactResult]:
        """Signed link-pair distances at one configuration."""
        if self.collision_checker is None:
            return []
        full = self._full_trajectory(joint_names, q)[0]
        return self.collision_checker.distances(full, link_names)

    def swept_contact_distances(
        self,
        joint_names: list[str],
        link_names: list[str],
        q_start: np.ndarray,
        q_end: np.ndarray,
    ) -> list[ContactResult]:
        """Signed link-pair distances over the motion q_start -> q_end."""
        if self.collision_checker is None:
            return []
        full = self._full_trajectory(joint_names, np.vstack([q_start, q_end]))
        return self.collision_checker.swept_distances(
            full[0], full[1], link_names,
        )

    def continuous_collision_check_trajectory(
        self,
        joint_names: list[str],
        link_names: list[str],
        trajectory: np.ndarray,
    ) -> list[ContactResult]:
        """Collision events along a joint trajectory (N, len(joint_names))."""
        if self.collision_checker is None:
            return []
        full = self._full_trajectory(joint_names, trajectory)
        return self.collision_checker.check_trajectory(full, link_names)


def make_workcell_environment(q0: np.ndarray | None = None) -> PlanningEnvironment:
    """iiwa7 grinding workcell with collision geometry, set to *q0*."""
    kinematics = PinocchioKinematics.for_iiwa7_workcell()
    checker = CollisionChecker(
        kinematics,
        iiwa7.COLLISION_SPHERES,
        iiwa7.ALLOWED_COLLISIONS,
        CollisionConfig(ground_z=iiwa7.GROUND_Z),
    )
    group = ManipulatorGroup(
        name=iiwa7.MANIPULATOR,
        joint_names=tuple(iiwa7.JOINT_NAMES),
        link_names=tuple(iiwa7.LINK_NAMES),
    )
    env = PlanningEnvironment(kinematics, [group], checker)

    if q0 is None:
        q0 = iiwa7.Q0_PUZZLE
    env.set_state(dict(zip(iiwa7.JOINT_NAMES, np.asarray(q0, dtype=float))))
    logger.debug("Workcell environment ready at q0=%s", np.round(q0, 4).tolist())
    return env
