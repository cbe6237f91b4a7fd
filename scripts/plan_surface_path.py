#!/usr/bin/env python3
"""Plan a joint trajectory that drives a held part along a scanned path.

Loads a surface scan, builds the Cartesian-constrained problem for the
iiwa7 grinding workcell, solves it with the trust-region solver and checks
the result for continuous collisions. Does NOT execute anything on a robot.

Usage:
    python3 plan_surface_path.py [--scan data/sample_scan.csv] [--max-iter 200]
"""

import argparse
import logging
from pathlib import Path

import numpy as np

from models.robots.kuka.iiwa7 import JOINT_NAMES, Q0_PUZZLE


def main() -> None:
    """Run surface-path planning."""
    data_dir = Path(__file__).parent.parent / "data"

    parser = argparse.ArgumentParser(
        description="Plan a Cartesian-constrained trajectory along a surface scan",
    )
    parser.add_argument(
        "--scan", type=str, default=str(data_dir / "sample_scan.csv"),
        help="Surface scan CSV (default: data/sample_scan.csv)",
    )
    parser.add_argument(
        "--urdf", type=str, default=None,
        help="Load the workcell from a URDF instead of the built-in model",
    )
    parser.add_argument(
        "--max-iter", type=int, default=200,
        help="Max solver iterations (default: 200)",
    )
    parser.add_argument(
        "--min-approx-improve", type=float, default=1e-3,
        help="Optimality tolerance (default: 1e-3)",
    )
    parser.add_argument(
        "--min-trust-box-size", type=float, default=1e-3,
        help="Trust region size tolerance (default: 1e-3)",
    )
    parser.add_argument(
        "--safety-margin", type=float, default=0.025,
        help="Collision safety margin in meters (default: 0.025)",
    )
    parser.add_argument(
        "--safety-coeff", type=float, default=20.0,
        help="Collision penalty coefficient (default: 20.0)",
    )
    parser.add_argument(
        "--start-fixed", action="store_true",
        help="Pin the first step to the current joint state",
    )
    parser.add_argument(
        "--plot", action="store_true",
        help="Report solver progress every iteration",
    )
    parser.add_argument(
        "--output", type=str, default=str(data_dir / "planned_trajectory.json"),
        help="Output JSON path (default: data/planned_trajectory.json)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
    )
    logger = logging.getLogger(__name__)

    from cartesian_trajopt import (
        ManipulatorGroup,
        PlannerConfig,
        PlanningContext,
        PlanningEnvironment,
        SolverConfig,
        make_workcell_environment,
        plan_surface_path,
    )
    from cartesian_trajopt.trajectory_io import save_solve_outcome
    from collision_check import CollisionChecker, CollisionConfig
    from kinematics import PinocchioKinematics
    from models.robots.kuka import iiwa7

    logger.info("=" * 60)
    logger.info("Surface Path Trajectory Optimization")
    logger.info("=" * 60)

    config = PlannerConfig(
        manipulator=iiwa7.MANIPULATOR,
        held_link=iiwa7.HELD_LINK,
        stationary_link=iiwa7.STATIONARY_LINK,
        start_fixed=args.start_fixed,
        safety_margin=args.safety_margin,
        safety_coeff=args.safety_coeff,
        solver=SolverConfig(
            max_iter=args.max_iter,
            min_approx_improve=args.min_approx_improve,
            min_trust_box_size=args.min_trust_box_size,
        ),
    )

    logger.info(f"  Scan: {args.scan}")
    logger.info(f"  Manipulator: {config.manipulator}")
    logger.info(f"  Max iter: {config.solver.max_iter}")
    logger.info(f"  Min approx improve: {config.solver.min_approx_improve}")
    logger.info(f"  Min trust box size: {config.solver.min_trust_box_size}")
    logger.info(
        f"  Safety margin: {config.safety_margin} m "
        f"(coeff {config.safety_coeff})"
    )
    logger.info(f"  Start fixed: {config.start_fixed}")
    logger.info("")

    logger.info("Loading workcell...")
    if args.urdf is None:
        env = make_workcell_environment(Q0_PUZZLE)
    else:
        kin = PinocchioKinematics.from_urdf_path(args.urdf)
        checker = CollisionChecker(
            kin,
            iiwa7.COLLISION_SPHERES,
            iiwa7.ALLOWED_COLLISIONS,
            CollisionConfig(ground_z=iiwa7.GROUND_Z),
        )
        group = ManipulatorGroup(
            name=iiwa7.MANIPULATOR,
            joint_names=tuple(JOINT_NAMES),
            link_names=tuple(iiwa7.LINK_NAMES),
        )
        env = PlanningEnvironment(kin, [group], checker)
        env.set_state(dict(zip(JOINT_NAMES, Q0_PUZZLE)))

    callback = None
    if args.plot:
        def callback(iteration, trajectory):
            logger.info(
                f"  iter {iteration:4d}: max joint step "
                f"{np.max(np.abs(np.diff(trajectory, axis=0)), initial=0.0):.4f} rad"
            )

    context = PlanningContext(environment=env, config=config, callback=callback)
    problem, outcome = plan_surface_path(context, args.scan)

    logger.info("")
    logger.info("=" * 60)
    logger.info("Results")
    logger.info("=" * 60)
    logger.info(f"  Steps: {problem.n_steps}")
    logger.info(f"  Status: {outcome.status.value}")
    logger.info(f"  Iterations: {outcome.n_iterations}")
    logger.info(f"  Planning time: {outcome.planning_time:.3f}s")
    logger.info(f"  Initial collisions: {outcome.initial_collision_count}")
    logger.info(f"  Final collisions: {outcome.final_collision_count}")
    for contact in outcome.final_collisions:
        logger.info(
            f"    step {contact.step}: {contact.link_a} <-> {contact.link_b} "
            f"({contact.distance:.4f} m)"
        )

    output_path = save_solve_outcome(args.output, problem, outcome, JOINT_NAMES)
    logger.info("")
    logger.info(f"Saved to {output_path}")


if __name__ == "__main__":
    main()
