"""Cartesian-constrained trajectory optimization along scanned surface paths.

Provides tools for:
- Tool path generation from surface scan files
- Problem construction (smoothness costs, collision cost, pose constraints)
- Solve-and-verify orchestration around a trust-region solver
"""

from .environment import (
    Manipulator,
    ManipulatorGroup,
    PlanningEnvironment,
    make_workcell_environment,
)
from .errors import (
    DegenerateNormal,
    MalformedInputRow,
    MissingLink,
    MissingManipulator,
    PlanningError,
)
from .orchestrator import SolveOutcome, solve_and_verify
from .pipeline import PlanningContext, plan_surface_path
from .problem import (
    PlannerConfig,
    ProblemDescription,
    SolverConfig,
    build_problem,
)
from .solver import SolverResult, SolverStatus, TrustRegionSolver
from .terms import (
    CollisionAvoidanceTerm,
    JointSmoothnessTerm,
    PoseConstraintTerm,
    SafetyMarginTable,
    SmoothnessOrder,
    Term,
    TermType,
)
from .toolpath import (
    SurfaceSample,
    ToolFrame,
    ToolPath,
    load_tool_path,
    make_tool_frame,
    read_surface_samples,
)

__all__ = [
    "CollisionAvoidanceTerm",
    "DegenerateNormal",
    "JointSmoothnessTerm",
    "MalformedInputRow",
    "Manipulator",
    "ManipulatorGroup",
    "MissingLink",
    "MissingManipulator",
    "PlannerConfig",
    "PlanningContext",
    "PlanningEnvironment",
    "PlanningError",
    "PoseConstraintTerm",
    "ProblemDescription",
    "SafetyMarginTable",
    "SmoothnessOrder",
    "SolveOutcome",
    "SolverConfig",
    "SolverResult",
    "SolverStatus",
    "SurfaceSample",
    "Term",
    "TermType",
    "ToolFrame",
    "ToolPath",
    "TrustRegionSolver",
    "build_problem",
    "load_tool_path",
    "make_tool_frame",
    "make_workcell_environment",
    "plan_surface_path",
    "read_surface_samples",
    "solve_and_verify",
]
