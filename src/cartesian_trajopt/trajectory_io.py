"""Planning result I/O."""

import json
from pathlib import Path
from typing import Tuple

import numpy as np

from .orchestrator import SolveOutcome
from .problem import ProblemDescription


def _contact_dicts(contacts) -> list[dict]:
    return [
        {
            "step": c.step,
            "link_a": c.link_a,
            "link_b": c.link_b,
            "distance": c.distance,
        }
        for c in contacts
    ]


def outcome_to_dict(
    problem: ProblemDescription,
    outcome: SolveOutcome,
    joint_names: list[str],
) -> dict:
    """JSON-ready summary of a planning run."""
    return {
        "config": {
            "n_steps": problem.n_steps,
            "manipulator": problem.manipulator,
            "start_fixed": problem.start_fixed,
            "max_iter": problem.solver.max_iter,
            "min_approx_improve": problem.solver.min_approx_improve,
            "min_trust_box_size": problem.solver.min_trust_box_size,
        },
        "joint_names": list(joint_names),
        "trajectory": np.asarray(outcome.trajectory).tolist(),
        "status": outcome.status.value,
        "n_iterations": outcome.n_iterations,
        "planning_time": outcome.planning_time,
        "collisions": {
            "initial_count": outcome.initial_collision_count,
            "final_count": outcome.final_collision_count,
            "initial": _contact_dicts(outcome.initial_collisions),
            "final": _contact_dicts(outcome.final_collisions),
        },
    }


def save_solve_outcome(
    path: str | Path,
    problem: ProblemDescription,
    outcome: SolveOutcome,
    joint_names: list[str],
) -> Path:
    """Write a planning run to JSON, creating parent directories."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(outcome_to_dict(problem, outcome, joint_names), f, indent=2)
    return output_path


def load_joint_trajectory(json_path: str | Path) -> Tuple[list[str], np.ndarray]:
    """Load a planned trajectory written by ``save_solve_outcome``.

    Returns:
        (joint_names, trajectory (N, num_joints))
    """
    with open(json_path) as f:
        data = json.load(f)

    joint_names = data["joint_names"]
    trajectory = np.array(data["trajectory"], dtype=np.float64)
    trajectory = trajectory.reshape(-1, len(joint_names))
    return joint_names, trajectory
