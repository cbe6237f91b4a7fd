"""End-to-end planning: scan file -> problem -> solved trajectory."""

from dataclasses import dataclass, field
from pathlib import Path

from .orchestrator import SolveOutcome, solve_and_verify
from .problem import PlannerConfig, ProblemDescription, build_problem
from .solver import ProgressCallback
from .toolpath import load_tool_path


@dataclass
class PlanningContext:
    """Everything one planning request needs, passed explicitly.

    Attributes:
        environment: Environment service (robot state, kinematics,
            collision queries).
        config: Planner configuration.
        callback: Optional solver progress callback.
    """

    environment: object
    config: PlannerConfig = field(default_factory=PlannerConfig)
    callback: ProgressCallback | None = None


def plan_surface_path(
    context: PlanningContext,
    scan_path: str | Path,
) -> tuple[ProblemDescription, SolveOutcome]:
    """Plan a trajectory that tracks the surface path in *scan_path*.

    Raises:
        MalformedInputRow: Bad scan row.
        DegenerateNormal: Zero-length normal in the scan.
        MissingManipulator: Unknown manipulator.
        MissingLink: Unknown stationary or held link.
    """
    tool_path = load_tool_path(scan_path)
    problem = build_problem(context.environment, tool_path, context.config)
    outcome = solve_and_verify(
        problem, context.environment, callback=context.callback,
    )
    return problem, outcome
