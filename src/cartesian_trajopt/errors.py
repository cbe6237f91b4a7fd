"""Exceptions raised while building and solving surface-path problems.

All of them are fatal for the planning request and are raised before the
solver is invoked. Solver non-convergence is not an error; it is reported
through ``SolverStatus``.
"""


class PlanningError(Exception):
    """Base class for planning failures."""


class MalformedInputRow(PlanningError, ValueError):
    """A scan row has the wrong field count or a non-numeric field."""

    def __init__(self, line_number: int, line: str, reason: str):
        self.line_number = line_number
        self.line = line
        self.reason = reason
        super().__init__(
            f"Malformed scan row at line {line_number}: {reason} ({line!r})"
        )


class DegenerateNormal(PlanningError, ValueError):
    """A scan row carries a zero-length surface normal."""

    def __init__(self, line_number: int):
        self.line_number = line_number
        super().__init__(f"Zero-length surface normal at line {line_number}")


class MissingManipulator(PlanningError, LookupError):
    """The named manipulator group is not defined in the environment."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Manipulator '{name}' not found in environment")


class MissingLink(PlanningError, LookupError):
    """The named link frame is not defined in the environment."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Link '{name}' not found in environment")
