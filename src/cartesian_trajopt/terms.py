"""Cost and constraint term descriptors.

The term set is closed: joint smoothness (velocity, acceleration, jerk),
collision avoidance and Cartesian pose. Terms only describe *what* is
penalized or constrained; ``TrustRegionSolver`` evaluates them.

Arrays stored on terms are read-only so a built problem cannot be mutated
while it is being solved. Terms compare structurally through ``to_dict``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import numpy as np
from scipy.spatial.transform import Rotation

from .toolpath import ToolFrame


class TermType(Enum):
    """Whether a term is minimized (cost) or must hold (constraint)."""

    COST = "cost"
    CONSTRAINT = "constraint"


class SmoothnessOrder(Enum):
    """Finite-difference order penalized by a smoothness term."""

    VELOCITY = 1
    ACCELERATION = 2
    JERK = 3

    @property
    def term_name(self) -> str:
        return {
            SmoothnessOrder.VELOCITY: "joint_vel",
            SmoothnessOrder.ACCELERATION: "joint_acc",
            SmoothnessOrder.JERK: "joint_jerk",
        }[self]


def _readonly_vector(values, size: int | None = None) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).ravel()
    if size is not None and arr.shape != (size,):
        raise ValueError(f"Expected {size} values, got {arr.shape[0]}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class SafetyMarginTable:
    """Per-step collision safety margins.

    Attributes:
        distances: Clearance below which proximity is penalized (N,) [m].
        coeffs: Penalty coefficient per step (N,).
    """

    distances: np.ndarray
    coeffs: np.ndarray

    def __post_init__(self):
        distances = _readonly_vector(self.distances)
        coeffs = _readonly_vector(self.coeffs, len(distances))
        if np.any(distances < 0) or np.any(coeffs < 0):
            raise ValueError("Safety margins must be non-negative")
        object.__setattr__(self, "distances", distances)
        object.__setattr__(self, "coeffs", coeffs)

    @classmethod
    def uniform(
        cls, n_steps: int, distance: float, coeff: float,
    ) -> "SafetyMarginTable":
        """Same margin and coefficient at every step."""
        return cls(
            distances=np.full(n_steps, float(distance)),
            coeffs=np.full(n_steps, float(coeff)),
        )

    def __len__(self) -> int:
        return len(self.distances)

    def at(self, step: int) -> tuple[float, float]:
        """(distance, coeff) for *step*."""
        return float(self.distances[step]), float(self.coeffs[step])

    def to_dict(self) -> dict:
        return {
            "distances": self.distances.tolist(),
            "coeffs": self.coeffs.tolist(),
        }


@dataclass(frozen=True, eq=False)
class JointSmoothnessTerm:
    """Squared finite-difference penalty on the joint trajectory.

    cost = sum_t sum_j coeffs[j] * (diff^order q)[t, j]^2
    """

    name: str
    order: SmoothnessOrder
    coeffs: np.ndarray
    term_type: TermType = field(default=TermType.COST, init=False)

    def __post_init__(self):
        object.__setattr__(self, "coeffs", _readonly_vector(self.coeffs))

    def to_dict(self) -> dict:
        return {
            "kind": "joint_smoothness",
            "name": self.name,
            "term_type": self.term_type.value,
            "order": self.order.name.lower(),
            "coeffs": self.coeffs.tolist(),
        }


@dataclass(frozen=True, eq=False)
class CollisionAvoidanceTerm:
    """Hinge penalty on contact distances below the safety margin.

    Attributes:
        name: Term name.
        continuous: Measure distances on the swept motion between
            consecutive steps instead of at the steps themselves.
        first_step: First evaluated step.
        last_step: Last evaluated step (inclusive).
        gap: Evaluate every ``gap``-th step.
        safety_margins: Margin table indexed by step.
    """

    name: str
    continuous: bool
    first_step: int
    last_step: int
    gap: int
    safety_margins: SafetyMarginTable
    term_type: TermType = field(default=TermType.COST, init=False)

    def __post_init__(self):
        if self.gap < 1:
            raise ValueError("gap must be >= 1")
        if self.first_step < 0:
            raise ValueError("first_step must be >= 0")
        if self.last_step >= len(self.safety_margins):
            raise ValueError(
                f"last_step {self.last_step} outside safety margin table "
                f"of {len(self.safety_margins)} steps"
            )

    @property
    def steps(self) -> range:
        return range(self.first_step, self.last_step + 1, self.gap)

    def to_dict(self) -> dict:
        return {
            "kind": "collision",
            "name": self.name,
            "term_type": self.term_type.value,
            "continuous": self.continuous,
            "first_step": self.first_step,
            "last_step": self.last_step,
            "gap": self.gap,
            "safety_margins": self.safety_margins.to_dict(),
        }


@dataclass(frozen=True, eq=False)
class PoseConstraintTerm:
    """Pins ``link * tcp`` to a world-frame target at one step.

    The residual is ``[rot_coeffs * rotvec(R_err), pos_coeffs * p_err]``
    with ``T_err = T_target^-1 * FK(q, link) * tcp``. Components whose
    weight is zero are left unconstrained.

    Attributes:
        name: Term name.
        link: Link whose pose is constrained.
        tcp: Tool-center-point offset expressed in ``link``.
        timestep: Trajectory step the term applies to.
        xyz: Target position in the world frame (3,) [m].
        wxyz: Target orientation as unit quaternion (4,).
        pos_coeffs: Per-axis position weights (3,).
        rot_coeffs: Per-axis orientation weights (3,).
    """

    name: str
    link: str
    tcp: ToolFrame
    timestep: int
    xyz: np.ndarray
    wxyz: np.ndarray
    pos_coeffs: np.ndarray
    rot_coeffs: np.ndarray
    term_type: TermType = field(default=TermType.CONSTRAINT, init=False)

    def __post_init__(self):
        object.__setattr__(self, "xyz", _readonly_vector(self.xyz, 3))
        object.__setattr__(self, "wxyz", _readonly_vector(self.wxyz, 4))
        object.__setattr__(
            self, "pos_coeffs", _readonly_vector(self.pos_coeffs, 3),
        )
        object.__setattr__(
            self, "rot_coeffs", _readonly_vector(self.rot_coeffs, 3),
        )

    @property
    def weights(self) -> np.ndarray:
        """Residual weights (6,), rotation first."""
        return np.concatenate([self.rot_coeffs, self.pos_coeffs])

    @property
    def target_matrix(self) -> np.ndarray:
        """Target pose as homogeneous transform (4, 4)."""
        w, x, y, z = self.wxyz
        T = np.eye(4)
        T[:3, :3] = Rotation.from_quat([x, y, z, w]).as_matrix()
        T[:3, 3] = self.xyz
        return T

    def to_dict(self) -> dict:
        return {
            "kind": "pose",
            "name": self.name,
            "term_type": self.term_type.value,
            "link": self.link,
            "tcp": self.tcp.to_dict(),
            "timestep": self.timestep,
            "xyz": self.xyz.tolist(),
            "wxyz": self.wxyz.tolist(),
            "pos_coeffs": self.pos_coeffs.tolist(),
            "rot_coeffs": self.rot_coeffs.tolist(),
        }


Term = Union[JointSmoothnessTerm, CollisionAvoidanceTerm, PoseConstraintTerm]
