"""Pinocchio-based forward kinematics for named frames."""

from pathlib import Path

import numpy as np
import pinocchio as pin

_UNLIMITED = 1e10


class PinocchioKinematics:
    """Forward kinematics over a pinocchio model.

    Only single-DOF joints (revolute/prismatic) are addressed by name; the
    configuration vector layout follows ``model.joints[i].idx_q``.

    Usage:
        kin = PinocchioKinematics.from_urdf_path("robot.urdf")
        T = kin.frame_placement(q, "tool0")
    """

    def __init__(self, model: pin.Model):
        """Initialize kinematics.

        Args:
            model: Pinocchio model.
        """
        self.model = model
        self.data = model.createData()

        self._q_index = {}
        for jid in range(1, model.njoints):
            self._q_index[model.names[jid]] = model.joints[jid].idx_q

    @classmethod
    def from_urdf_path(cls, urdf_path: str | Path) -> "PinocchioKinematics":
        """Load a kinematic model from a URDF file."""
        return cls(pin.buildModelFromUrdf(str(urdf_path)))

    @classmethod
    def for_iiwa7_workcell(cls) -> "PinocchioKinematics":
        """iiwa7 arm holding a part in front of a grinder."""
        from models.robots.kuka.iiwa7 import build_workcell_model

        return cls(build_workcell_model())

    @property
    def joint_names(self) -> list[str]:
        return list(self._q_index)

    @property
    def nq(self) -> int:
        return self.model.nq

    def neutral(self) -> np.ndarray:
        return pin.neutral(self.model)

    def has_joint(self, name: str) -> bool:
        return name in self._q_index

    def has_frame(self, name: str) -> bool:
        return self.model.existFrame(name)

    def q_indices(self, joint_names: list[str]) -> np.ndarray:
        """Configuration indices of *joint_names*.

        Raises:
            KeyError: If a joint is not in the model.
        """
        return np.array([self._q_index[name] for name in joint_names], dtype=int)

    def joint_limits(
        self,
        joint_names: list[str],
    ) -> tuple[np.ndarray, np.ndarray]:
        """Lower and upper position limits for *joint_names* [rad or m].

        Joints without limits (pinocchio stores +-DBL_MAX) report +-inf.
        """
        idx = self.q_indices(joint_names)
        lower = np.asarray(self.model.lowerPositionLimit, dtype=np.float64)[idx]
        upper = np.asarray(self.model.upperPositionLimit, dtype=np.float64)[idx]
        lower = np.where(lower < -_UNLIMITED, -np.inf, lower)
        upper = np.where(upper > _UNLIMITED, np.inf, upper)
        return lower, upper

    def frame_placements(
        self,
        q: np.ndarray,
        frame_names: list[str],
    ) -> dict[str, np.ndarray]:
        """World poses of several frames from one FK pass.

        Args:
            q: Full configuration (nq,).
            frame_names: Frames to report.

        Returns:
            Mapping frame name -> homogeneous transform (4, 4).

        Raises:
            KeyError: If a frame is not in the model.
        """
        q = np.asarray(q, dtype=np.float64).ravel()
        pin.forwardKinematics(self.model, self.data, q)
        pin.updateFramePlacements(self.model, self.data)

        placements = {}
        for name in frame_names:
            if not self.model.existFrame(name):
                raise KeyError(name)
            fid = self.model.getFrameId(name)
            placements[name] = self.data.oMf[fid].homogeneous.copy()
        return placements

    def frame_placement(self, q: np.ndarray, frame_name: str) -> np.ndarray:
        """World pose of one frame (4, 4)."""
        return self.frame_placements(q, [frame_name])[frame_name]
