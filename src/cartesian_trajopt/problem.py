"""Problem construction for Cartesian-constrained surface trajectories.

Combines the environment state, a tool path and the fixed term set into a
``ProblemDescription``:

1. Constant initial trajectory (current joint state at every step)
2. Joint velocity, acceleration and jerk costs
3. Discrete collision cost over the full step range
4. One pose constraint per tool frame, all tracking the same stationary
   frame (the grinder)
"""

import logging
from dataclasses import dataclass, field

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import MissingLink
from .terms import (
    CollisionAvoidanceTerm,
    JointSmoothnessTerm,
    PoseConstraintTerm,
    SafetyMarginTable,
    SmoothnessOrder,
    Term,
)
from .toolpath import ToolPath

logger = logging.getLogger(__name__)


@dataclass
class SolverConfig:
    """Trust-region solver tuning.

    Attributes:
        max_iter: Maximum solver iterations.
        min_approx_improve: Stop when the optimality measure falls below
            this value.
        min_trust_box_size: Stop when the trust region shrinks below this
            size.
        initial_trust_box_size: Initial trust region size.
    """

    max_iter: int = 200
    min_approx_improve: float = 1e-3
    min_trust_box_size: float = 1e-3
    initial_trust_box_size: float = 0.1

    def __post_init__(self):
        if self.max_iter < 1:
            raise ValueError("max_iter must be >= 1")
        if self.min_approx_improve <= 0 or self.min_trust_box_size <= 0:
            raise ValueError("Solver tolerances must be positive")
        if self.initial_trust_box_size <= 0:
            raise ValueError("initial_trust_box_size must be positive")


@dataclass
class PlannerConfig:
    """Configuration for building a surface-path problem.

    Attributes:
        manipulator: Manipulator group to plan for.
        held_link: Link holding the part; pose constraints apply to it.
        stationary_link: World-fixed frame the tool frames must track.
        start_fixed: Pin the first step to the current joint state.
        velocity_coeff: Joint velocity cost coefficient (per joint).
        acceleration_coeff: Joint acceleration cost coefficient (per joint).
        jerk_coeff: Joint jerk cost coefficient (per joint).
        collision_continuous: Evaluate the collision cost on swept motion.
        collision_gap: Evaluate the collision cost every N-th step.
        safety_margin: Collision clearance distance [m].
        safety_coeff: Collision penalty coefficient.
        pos_coeffs: Pose constraint position weights (3,).
        rot_coeffs: Pose constraint orientation weights (3,). The zero
            z-weight leaves tool spin about the approach axis free.
        solver: Trust-region solver tuning.
    """

    manipulator: str = "manipulator"
    held_link: str = "part"
    stationary_link: str = "grinder_frame"
    start_fixed: bool = False
    velocity_coeff: float = 1.0
    acceleration_coeff: float = 2.0
    jerk_coeff: float = 5.0
    collision_continuous: bool = False
    collision_gap: int = 1
    safety_margin: float = 0.025
    safety_coeff: float = 20.0
    pos_coeffs: np.ndarray = field(
        default_factory=lambda: np.array([10.0, 10.0, 10.0])
    )
    rot_coeffs: np.ndarray = field(
        default_factory=lambda: np.array([10.0, 10.0, 0.0])
    )
    solver: SolverConfig = field(default_factory=SolverConfig)

    def __post_init__(self):
        self.pos_coeffs = np.asarray(self.pos_coeffs, dtype=np.float64)
        self.rot_coeffs = np.asarray(self.rot_coeffs, dtype=np.float64)
        if self.pos_coeffs.shape != (3,) or self.rot_coeffs.shape != (3,):
            raise ValueError("Pose weights must have 3 components")
        if np.any(self.pos_coeffs < 0) or np.any(self.rot_coeffs < 0):
            raise ValueError("Pose weights must be non-negative")
        if min(self.velocity_coeff, self.acceleration_coeff,
               self.jerk_coeff) < 0:
            raise ValueError("Smoothness coefficients must be non-negative")
        if self.safety_margin < 0 or self.safety_coeff < 0:
            raise ValueError("Safety margin and coefficient must be non-negative")
        if self.collision_gap < 1:
            raise ValueError("collision_gap must be >= 1")

    @property
    def smoothness_coeffs(self) -> dict[SmoothnessOrder, float]:
        return {
            SmoothnessOrder.VELOCITY: self.velocity_coeff,
            SmoothnessOrder.ACCELERATION: self.acceleration_coeff,
            SmoothnessOrder.JERK: self.jerk_coeff,
        }


@dataclass(frozen=True, eq=False)
class ProblemDescription:
    """Complete trajectory optimization problem.

    Attributes:
        n_steps: Number of trajectory steps.
        manipulator: Manipulator group planned for.
        start_fixed: Whether the first step is pinned.
        solver: Solver tuning.
        init_traj: Initial trajectory (n_steps, num_joints), read-only.
        costs: Cost terms in evaluation order.
        constraints: Constraint terms in evaluation order.
    """

    n_steps: int
    manipulator: str
    start_fixed: bool
    solver: SolverConfig
    init_traj: np.ndarray
    costs: tuple[Term, ...]
    constraints: tuple[Term, ...]

    def __post_init__(self):
        init_traj = np.array(self.init_traj, dtype=np.float64)
        if init_traj.ndim != 2 or init_traj.shape[0] != self.n_steps:
            raise ValueError(
                f"init_traj must have {self.n_steps} rows, "
                f"got shape {init_traj.shape}"
            )
        init_traj.setflags(write=False)
        object.__setattr__(self, "init_traj", init_traj)
        object.__setattr__(self, "costs", tuple(self.costs))
        object.__setattr__(self, "constraints", tuple(self.constraints))

    @property
    def num_joints(self) -> int:
        return self.init_traj.shape[1]

    @property
    def pose_constraints(self) -> list[PoseConstraintTerm]:
        return [
            t for t in self.constraints if isinstance(t, PoseConstraintTerm)
        ]

    def to_dict(self) -> dict:
        return {
            "n_steps": self.n_steps,
            "manipulator": self.manipulator,
            "start_fixed": self.start_fixed,
            "solver": {
                "max_iter": self.solver.max_iter,
                "min_approx_improve": self.solver.min_approx_improve,
                "min_trust_box_size": self.solver.min_trust_box_size,
                "initial_trust_box_size": self.solver.initial_trust_box_size,
            },
            "init_traj": self.init_traj.tolist(),
            "costs": [t.to_dict() for t in self.costs],
            "constraints": [t.to_dict() for t in self.constraints],
        }


def stationary_target(environment, link_name: str) -> tuple[np.ndarray, np.ndarray]:
    """Position and (w, x, y, z) orientation of a fixed link.

    Raises:
        MissingLink: If the link cannot be found.
    """
    T = np.asarray(environment.link_transform(link_name), dtype=np.float64)
    x, y, z, w = Rotation.from_matrix(T[:3, :3]).as_quat()
    return T[:3, 3].copy(), np.array([w, x, y, z])


def build_problem(
    environment,
    tool_path: ToolPath,
    config: PlannerConfig | None = None,
    safety_margins: SafetyMarginTable | None = None,
) -> ProblemDescription:
    """Build the trajectory optimization problem for a tool path.

    Args:
        environment: Environment service (see ``PlanningEnvironment``).
        tool_path: Tool frames, one per trajectory step.
        config: Planner configuration. Uses defaults if None.
        safety_margins: Per-step collision margins. Defaults to the
            uniform ``config.safety_margin`` / ``config.safety_coeff``.

    Returns:
        ProblemDescription ready for ``solve_and_verify``.

    Raises:
        MissingManipulator: If ``config.manipulator`` is unknown.
        MissingLink: If the stationary or held link is unknown.
        ValueError: If ``safety_margins`` does not have one entry per step.
    """
    config = config or PlannerConfig()
    n_steps = len(tool_path)

    manip = environment.get_manipulator(config.manipulator)
    start_pos = np.asarray(
        environment.current_joint_values(config.manipulator), dtype=np.float64,
    )
    num_joints = len(start_pos)
    init_traj = np.tile(start_pos, (n_steps, 1))

    costs: list[Term] = []
    for order, coeff in config.smoothness_coeffs.items():
        costs.append(JointSmoothnessTerm(
            name=order.term_name,
            order=order,
            coeffs=np.full(num_joints, coeff),
        ))

    if safety_margins is None:
        safety_margins = SafetyMarginTable.uniform(
            n_steps, config.safety_margin, config.safety_coeff,
        )
    elif len(safety_margins) != n_steps:
        raise ValueError(
            f"Safety margin table has {len(safety_margins)} entries, "
            f"expected {n_steps}"
        )

    costs.append(CollisionAvoidanceTerm(
        name="collision",
        continuous=config.collision_continuous,
        first_step=0,
        last_step=n_steps - 1,
        gap=config.collision_gap,
        safety_margins=safety_margins,
    ))

    stationary_xyz, stationary_wxyz = stationary_target(
        environment, config.stationary_link,
    )
    if config.held_link not in manip.link_names:
        raise MissingLink(config.held_link)

    constraints: list[Term] = []
    for i, tcp in enumerate(tool_path):
        constraints.append(PoseConstraintTerm(
            name=f"waypoint_cart_{i}",
            link=config.held_link,
            tcp=tcp,
            timestep=i,
            xyz=stationary_xyz,
            wxyz=stationary_wxyz,
            pos_coeffs=config.pos_coeffs,
            rot_coeffs=config.rot_coeffs,
        ))

    problem = ProblemDescription(
        n_steps=n_steps,
        manipulator=config.manipulator,
        start_fixed=config.start_fixed,
        solver=config.solver,
        init_traj=init_traj,
        costs=tuple(costs),
        constraints=tuple(constraints),
    )
    logger.info(
        "Built problem: %d steps, %d joints, %d costs, %d constraints",
        n_steps, num_joints, len(problem.costs), len(problem.constraints),
    )
    return problem
