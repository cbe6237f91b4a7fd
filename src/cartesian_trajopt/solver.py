"""Trust-region solver adapter for surface-path problems.

Evaluates the closed term set of a ``ProblemDescription`` and hands the
resulting nonlinear program to ``scipy.optimize.minimize`` with the
``trust-constr`` method:

- Decision vector: the joint trajectory, row-major (the first row is
  excluded when the start is fixed)
- Objective: smoothness costs (analytic gradient) plus collision costs
  (per-step forward differences)
- Equality constraints: all pose residuals, with a sparse per-step
  forward-difference Jacobian
- Bounds: manipulator joint limits where finite
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np
from scipy import sparse
from scipy.optimize import BFGS, Bounds, NonlinearConstraint, minimize
from scipy.spatial.transform import Rotation

from .problem import ProblemDescription
from .terms import (
    CollisionAvoidanceTerm,
    JointSmoothnessTerm,
    PoseConstraintTerm,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, np.ndarray], Optional[bool]]

FD_STEP = 1e-6

# Contacts farther than margin + this band cannot activate the hinge under
# an FD_STEP perturbation.
_FD_SKIP_BAND = 1e-2


class SolverStatus(Enum):
    """Termination status reported by the solver."""

    CONVERGED = "converged"
    ITERATION_LIMIT = "iteration limit reached"
    TOLERANCE_REACHED = "tolerance reached"
    USER_INTERRUPTED = "user interrupted"
    NOT_RUN = "not run"
    UNKNOWN = "unknown termination"


# scipy trust-constr status codes
_SCIPY_STATUS = {
    0: SolverStatus.ITERATION_LIMIT,
    1: SolverStatus.CONVERGED,
    2: SolverStatus.TOLERANCE_REACHED,
    3: SolverStatus.USER_INTERRUPTED,
}


def status_from_scipy(code: int) -> SolverStatus:
    """Translate a trust-constr status code; unknown codes are flagged."""
    try:
        return _SCIPY_STATUS[code]
    except KeyError:
        logger.warning("Unrecognized trust-constr status code %r", code)
        return SolverStatus.UNKNOWN


@dataclass
class SolverResult:
    """Result of one solver run.

    Attributes:
        trajectory: Final joint trajectory (n_steps, num_joints).
        status: Termination status.
        n_iterations: Iterations performed.
        cost: Final objective value.
        constraint_violation: Final maximum constraint violation.
    """

    trajectory: np.ndarray
    status: SolverStatus
    n_iterations: int = 0
    cost: float = float("nan")
    constraint_violation: float = 0.0


def difference_matrix(n_steps: int, order: int) -> np.ndarray:
    """Forward finite-difference operator (n_steps - order, n_steps)."""
    return np.diff(np.eye(n_steps), n=order, axis=0)


def smoothness_cost(
    trajectory: np.ndarray,
    term: JointSmoothnessTerm,
) -> tuple[float, np.ndarray]:
    """Cost and gradient of a joint smoothness term.

    Args:
        trajectory: Joint trajectory (n_steps, num_joints).
        term: Smoothness term.

    Returns:
        Tuple of (cost, gradient (n_steps, num_joints)).
    """
    n_steps = len(trajectory)
    order = term.order.value
    if n_steps <= order:
        return 0.0, np.zeros_like(trajectory)

    D = difference_matrix(n_steps, order)
    r = D @ trajectory
    cost = float(np.sum(term.coeffs * r ** 2))
    grad = 2.0 * D.T @ (r * term.coeffs)
    return cost, grad


def pose_error(term: PoseConstraintTerm, link_pose: np.ndarray) -> np.ndarray:
    """Unweighted pose error (6,): rotation vector then translation.

    Args:
        term: Pose constraint.
        link_pose: World pose of ``term.link`` (4, 4).
    """
    target = term.target_matrix
    R_t, p_t = target[:3, :3], target[:3, 3]
    actual = link_pose @ term.tcp.matrix

    R_err = R_t.T @ actual[:3, :3]
    p_err = R_t.T @ (actual[:3, 3] - p_t)
    rot_err = Rotation.from_matrix(R_err).as_rotvec()
    return np.concatenate([rot_err, p_err])


class _PoseCache:
    """Cache pose residuals and Jacobian for the last evaluated x.

    scipy evaluates the constraint function and its Jacobian at the same
    point; both come from the same FK passes.
    """

    def __init__(self, solver: "TrustRegionSolver") -> None:
        self._solver = solver
        self._last_x_hash: int | None = None
        self._last_result: tuple[np.ndarray, sparse.csr_matrix] | None = None

    def get(self, x: np.ndarray) -> tuple[np.ndarray, sparse.csr_matrix]:
        x_hash = hash(x.tobytes())
        if x_hash != self._last_x_hash:
            self._last_result = self._solver._pose_residuals_and_jacobian(x)
            self._last_x_hash = x_hash
        return self._last_result


class TrustRegionSolver:
    """Trust-region SQP over a surface-path problem.

    Usage:
        solver = TrustRegionSolver(problem, environment)
        result = solver.solve(problem.init_traj)
    """

    def __init__(self, problem: ProblemDescription, environment):
        """Initialize solver.

        Args:
            problem: Problem to solve.
            environment: Environment service providing the manipulator
                kinematics and collision distance queries.

        Raises:
            MissingManipulator: If the problem's manipulator is unknown.
            TypeError: If the problem holds an unsupported term.
        """
        self.problem = problem
        self.environment = environment
        self.manip = environment.get_manipulator(problem.manipulator)
        self.n_dof = problem.num_joints
        self._first_free = 1 if problem.start_fixed and problem.n_steps else 0

        self._smoothness: list[JointSmoothnessTerm] = []
        self._collision: list[CollisionAvoidanceTerm] = []
        self._poses: list[PoseConstraintTerm] = []
        for term in (*problem.costs, *problem.constraints):
            if isinstance(term, JointSmoothnessTerm):
                self._smoothness.append(term)
            elif isinstance(term, CollisionAvoidanceTerm):
                self._collision.append(term)
            elif isinstance(term, PoseConstraintTerm):
                self._poses.append(term)
            else:
                raise TypeError(f"Unsupported term type: {type(term).__name__}")

        # Pose terms on the pinned start row are constant in x.
        pinned = [t for t in self._poses if t.timestep < self._first_free]
        if pinned:
            logger.warning(
                "Ignoring %d pose constraint(s) on the fixed start step",
                len(pinned),
            )
            self._poses = [t for t in self._poses if t.timestep >= self._first_free]

        self._pose_masks = [term.weights != 0 for term in self._poses]
        self._pose_cache = _PoseCache(self)
        self._fixed_rows = np.asarray(problem.init_traj[:self._first_free])

    # ------------------------------------------------------------------
    # Variable layout
    # ------------------------------------------------------------------

    def _unpack(self, x: np.ndarray) -> np.ndarray:
        free = np.asarray(x, dtype=np.float64).reshape(-1, self.n_dof)
        return np.vstack([self._fixed_rows, free])

    def _pack(self, trajectory: np.ndarray) -> np.ndarray:
        return np.asarray(trajectory, dtype=np.float64)[self._first_free:].ravel()

    def _bounds(self) -> Bounds | None:
        lower = np.asarray(self.manip.lower_limits, dtype=np.float64)
        upper = np.asarray(self.manip.upper_limits, dtype=np.float64)
        if not (np.isfinite(lower).any() or np.isfinite(upper).any()):
            return None
        n_free = self.problem.n_steps - self._first_free
        return Bounds(np.tile(lower, n_free), np.tile(upper, n_free))

    # ------------------------------------------------------------------
    # Costs
    # ------------------------------------------------------------------

    def _hinge(self, contacts, margin: float, coeff: float) -> float:
        return coeff * sum(max(0.0, margin - c.distance) for c in contacts)

    def _near(self, contacts, margin: float) -> bool:
        return any(c.distance < margin + _FD_SKIP_BAND for c in contacts)

    def _discrete_collision_cost(
        self,
        trajectory: np.ndarray,
        term: CollisionAvoidanceTerm,
    ) -> tuple[float, np.ndarray]:
        joint_names = self.manip.joint_names
        link_names = self.manip.link_names
        grad = np.zeros_like(trajectory)
        cost = 0.0

        for t in term.steps:
            margin, coeff = term.safety_margins.at(t)
            if coeff == 0.0:
                continue
            contacts = self.environment.contact_distances(
                joint_names, link_names, trajectory[t],
            )
            base = self._hinge(contacts, margin, coeff)
            cost += base
            if t < self._first_free or not self._near(contacts, margin):
                continue
            for j in range(self.n_dof):
                q = trajectory[t].copy()
                q[j] += FD_STEP
                perturbed = self.environment.contact_distances(
                    joint_names, link_names, q,
                )
                grad[t, j] += (self._hinge(perturbed, margin, coeff) - base) / FD_STEP

        return cost, grad

    def _continuous_collision_cost(
        self,
        trajectory: np.ndarray,
        term: CollisionAvoidanceTerm,
    ) -> tuple[float, np.ndarray]:
        joint_names = self.manip.joint_names
        link_names = self.manip.link_names
        grad = np.zeros_like(trajectory)
        cost = 0.0

        for t in term.steps:
            if t + 1 >= len(trajectory):
                break
            margin, coeff = term.safety_margins.at(t)
            if coeff == 0.0:
                continue
            q_a, q_b = trajectory[t], trajectory[t + 1]
            contacts = self.environment.swept_contact_distances(
                joint_names, link_names, q_a, q_b,
            )
            base = self._hinge(contacts, margin, coeff)
            cost += base
            if not self._near(contacts, margin):
                continue
            for row in (t, t + 1):
                if row < self._first_free:
                    continue
                for j in range(self.n_dof):
                    ends = [q_a.copy(), q_b.copy()]
                    ends[row - t][j] += FD_STEP
                    perturbed = self.environment.swept_contact_distances(
                        joint_names, link_names, ends[0], ends[1],
                    )
                    grad[row, j] += (
                        self._hinge(perturbed, margin, coeff) - base
                    ) / FD_STEP

        return cost, grad

    def objective(self, x: np.ndarray) -> tuple[float, np.ndarray]:
        """Total cost and its gradient with respect to *x*."""
        trajectory = self._unpack(x)
        total = 0.0
        grad = np.zeros_like(trajectory)

        for term in self._smoothness:
            cost, g = smoothness_cost(trajectory, term)
            total += cost
            grad += g

        for term in self._collision:
            if term.continuous:
                cost, g = self._continuous_collision_cost(trajectory, term)
            else:
                cost, g = self._discrete_collision_cost(trajectory, term)
            total += cost
            grad += g

        return total, self._pack(grad)

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    def _pose_residual(
        self,
        term: PoseConstraintTerm,
        mask: np.ndarray,
        q: np.ndarray,
    ) -> np.ndarray:
        link_pose = self.manip.forward_kinematics(q, term.link)
        return (term.weights * pose_error(term, link_pose))[mask]

    def _pose_residuals_and_jacobian(
        self,
        x: np.ndarray,
    ) -> tuple[np.ndarray, sparse.csr_matrix]:
        trajectory = self._unpack(x)
        n_vars = x.size
        residuals = []
        rows, cols, vals = [], [], []
        offset = 0

        for term, mask in zip(self._poses, self._pose_masks):
            q = trajectory[term.timestep]
            base = self._pose_residual(term, mask, q)
            residuals.append(base)

            col0 = (term.timestep - self._first_free) * self.n_dof
            for j in range(self.n_dof):
                q_p = q.copy()
                q_p[j] += FD_STEP
                d = (self._pose_residual(term, mask, q_p) - base) / FD_STEP
                rows.extend(range(offset, offset + len(d)))
                cols.extend([col0 + j] * len(d))
                vals.extend(d)
            offset += len(base)

        residual = np.concatenate(residuals) if residuals else np.zeros(0)
        jac = sparse.csr_matrix((vals, (rows, cols)), shape=(offset, n_vars))
        return residual, jac

    def pose_residuals(self, x: np.ndarray) -> np.ndarray:
        """Weighted pose residuals of all constraints, stacked."""
        return self._pose_cache.get(x)[0]

    def pose_jacobian(self, x: np.ndarray) -> sparse.csr_matrix:
        """Sparse Jacobian of ``pose_residuals``."""
        return self._pose_cache.get(x)[1]

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(
        self,
        initial_trajectory: np.ndarray,
        callback: ProgressCallback | None = None,
    ) -> SolverResult:
        """Optimize from *initial_trajectory*.

        Args:
            initial_trajectory: Starting trajectory (n_steps, num_joints).
            callback: Called as ``callback(iteration, trajectory)`` after
                every iteration; returning True interrupts the solve.

        Returns:
            SolverResult with the final trajectory and status.
        """
        initial_trajectory = np.asarray(initial_trajectory, dtype=np.float64)
        x0 = self._pack(initial_trajectory)
        if x0.size == 0:
            return SolverResult(
                trajectory=initial_trajectory.copy(),
                status=SolverStatus.NOT_RUN,
            )

        constraints = []
        if any(mask.any() for mask in self._pose_masks):
            constraints.append(NonlinearConstraint(
                self.pose_residuals, 0.0, 0.0,
                jac=self.pose_jacobian, hess=BFGS(),
            ))

        progress = None
        if callback is not None:
            def progress(intermediate_result):
                trajectory = self._unpack(intermediate_result.x)
                if callback(intermediate_result.nit, trajectory):
                    raise StopIteration

        cfg = self.problem.solver
        result = minimize(
            self.objective,
            x0,
            jac=True,
            hess=BFGS(),
            method="trust-constr",
            bounds=self._bounds(),
            constraints=constraints,
            callback=progress,
            options={
                "maxiter": cfg.max_iter,
                "xtol": cfg.min_trust_box_size,
                "gtol": cfg.min_approx_improve,
                "initial_tr_radius": cfg.initial_trust_box_size,
                "verbose": 0,
            },
        )

        status = status_from_scipy(result.status)
        logger.debug(
            "trust-constr finished: %s (nit=%d, cost=%.6g, violation=%.3g)",
            result.message, result.nit, result.fun, result.constr_violation,
        )
        return SolverResult(
            trajectory=self._unpack(result.x),
            status=status,
            n_iterations=int(result.nit),
            cost=float(result.fun),
            constraint_violation=float(result.constr_violation),
        )
