"""Solve-and-verify cycle around the trust-region solver.

1. Continuous collision check of the initial trajectory (diagnostic)
2. One solver run with the problem's tuning, never retried
3. Continuous collision check of the resulting trajectory

Neither a non-converged status nor remaining collisions raise; both are
reported on the ``SolveOutcome`` for the caller to judge.
"""

import logging
import time
from dataclasses import dataclass, field

import numpy as np

from collision_check import ContactResult

from .problem import ProblemDescription
from .solver import ProgressCallback, SolverStatus, TrustRegionSolver

logger = logging.getLogger(__name__)


@dataclass
class SolveOutcome:
    """Result of one solve-and-verify cycle.

    Attributes:
        trajectory: Final joint trajectory (n_steps, num_joints).
        status: Solver termination status.
        initial_collisions: Continuous collision events before solving.
        final_collisions: Continuous collision events after solving.
        n_iterations: Solver iterations performed.
        planning_time: Solver wall time [s].
    """

    trajectory: np.ndarray
    status: SolverStatus
    initial_collisions: list[ContactResult] = field(default_factory=list)
    final_collisions: list[ContactResult] = field(default_factory=list)
    n_iterations: int = 0
    planning_time: float = 0.0

    @property
    def initial_collision_count(self) -> int:
        return len(self.initial_collisions)

    @property
    def final_collision_count(self) -> int:
        return len(self.final_collisions)

    @property
    def converged(self) -> bool:
        return self.status is SolverStatus.CONVERGED

    @property
    def collision_free(self) -> bool:
        return not self.final_collisions


def solve_and_verify(
    problem: ProblemDescription,
    environment,
    callback: ProgressCallback | None = None,
    solver_factory=TrustRegionSolver,
) -> SolveOutcome:
    """Check, solve and re-check a trajectory problem.

    Args:
        problem: Problem from ``build_problem``.
        environment: Environment service with continuous collision queries.
        callback: Optional progress callback passed to the solver.
        solver_factory: Called as ``solver_factory(problem, environment)``;
            the returned object must provide ``solve(initial_trajectory,
            callback)``.

    Returns:
        SolveOutcome with the trajectory, status and collision events.

    Raises:
        MissingManipulator: If the problem's manipulator is unknown.
    """
    manip = environment.get_manipulator(problem.manipulator)
    joint_names = manip.joint_names
    link_names = manip.link_names

    if problem.n_steps == 0:
        logger.warning("Problem has no steps; nothing to optimize")
        return SolveOutcome(
            trajectory=np.array(problem.init_traj),
            status=SolverStatus.NOT_RUN,
        )

    initial_collisions = environment.continuous_collision_check_trajectory(
        joint_names, link_names, problem.init_traj,
    )
    logger.info(
        "Initial trajectory number of continuous collisions: %d",
        len(initial_collisions),
    )

    solver = solver_factory(problem, environment)
    t_start = time.time()
    result = solver.solve(np.array(problem.init_traj), callback)
    planning_time = time.time() - t_start
    logger.info(
        "Optimization Status: %s, Planning time: %.3f",
        result.status.value, planning_time,
    )

    final_collisions = environment.continuous_collision_check_trajectory(
        joint_names, link_names, result.trajectory,
    )
    logger.info(
        "Final trajectory number of continuous collisions: %d",
        len(final_collisions),
    )

    return SolveOutcome(
        trajectory=result.trajectory,
        status=result.status,
        initial_collisions=list(initial_collisions),
        final_collisions=list(final_collisions),
        n_iterations=result.n_iterations,
        planning_time=planning_time,
    )
