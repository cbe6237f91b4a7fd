"""Unit tests for problem construction."""

from pathlib import Path

import numpy as np
import pytest

from cartesian_trajopt import (
    CollisionAvoidanceTerm,
    JointSmoothnessTerm,
    MissingLink,
    MissingManipulator,
    PlannerConfig,
    PoseConstraintTerm,
    SafetyMarginTable,
    SmoothnessOrder,
    TermType,
    ToolPath,
    build_problem,
    load_tool_path,
)
from models.robots.kuka import iiwa7

SAMPLE_SCAN = Path(__file__).parent.parent / "data" / "sample_scan.csv"


@pytest.fixture
def tool_path(write_scan):
    rows = ["10,0,0,0,0,1", "0,10,0,0,0,1", "-10,0,5,0.1,0,1", "0,-10,5,0,0.1,1"]
    return load_tool_path(write_scan(rows))


# ============================================================
# Structure
# ============================================================

class TestProblemStructure:
    """Tests for the shape of a built problem."""

    def test_step_count_matches_tool_path(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        assert problem.n_steps == len(tool_path)
        assert len(problem.pose_constraints) == len(tool_path)
        assert problem.init_traj.shape == (len(tool_path), 3)

    def test_initial_trajectory_is_current_state(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        for row in problem.init_traj:
            np.testing.assert_array_equal(row, fake_env.q)

    def test_initial_trajectory_is_read_only(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        with pytest.raises(ValueError):
            problem.init_traj[0, 0] = 1.0

    def test_smoothness_costs(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        smoothness = [t for t in problem.costs if isinstance(t, JointSmoothnessTerm)]
        assert [t.order for t in smoothness] == [
            SmoothnessOrder.VELOCITY,
            SmoothnessOrder.ACCELERATION,
            SmoothnessOrder.JERK,
        ]
        assert [t.name for t in smoothness] == ["joint_vel", "joint_acc", "joint_jerk"]
        for term, coeff in zip(smoothness, [1.0, 2.0, 5.0]):
            np.testing.assert_array_equal(term.coeffs, np.full(3, coeff))
            assert term.term_type is TermType.COST

    def test_collision_cost(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        collision = [t for t in problem.costs if isinstance(t, CollisionAvoidanceTerm)]
        assert len(collision) == 1
        term = collision[0]
        assert term.continuous is False
        assert (term.first_step, term.last_step, term.gap) == (0, len(tool_path) - 1, 1)
        np.testing.assert_array_equal(term.safety_margins.distances, 0.025)
        np.testing.assert_array_equal(term.safety_margins.coeffs, 20.0)

    def test_pose_constraints(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        for i, term in enumerate(problem.pose_constraints):
            assert term.name == f"waypoint_cart_{i}"
            assert term.link == "part"
            assert term.timestep == i
            assert term.tcp is tool_path[i]
            np.testing.assert_array_equal(term.xyz, [0.5, 0.0, 0.4])
            np.testing.assert_allclose(np.abs(term.wxyz), [1.0, 0.0, 0.0, 0.0])
            np.testing.assert_array_equal(term.pos_coeffs, [10.0, 10.0, 10.0])
            np.testing.assert_array_equal(term.rot_coeffs, [10.0, 10.0, 0.0])

    def test_all_steps_share_target(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        terms = problem.pose_constraints
        for term in terms[1:]:
            np.testing.assert_array_equal(term.xyz, terms[0].xyz)
            np.testing.assert_array_equal(term.wxyz, terms[0].wxyz)

    def test_constraints_are_all_pose_terms(self, fake_env, tool_path):
        problem = build_problem(fake_env, tool_path)
        assert all(isinstance(t, PoseConstraintTerm) for t in problem.constraints)

    def test_single_step(self, fake_env, write_scan):
        problem = build_problem(fake_env, load_tool_path(write_scan(["0,0,0,0,0,1"])))
        assert problem.n_steps == 1
        assert len(problem.pose_constraints) == 1
        assert problem.init_traj.shape == (1, 3)

    def test_empty_path(self, fake_env):
        problem = build_problem(fake_env, ToolPath())
        assert problem.n_steps == 0
        assert problem.constraints == ()
        assert problem.init_traj.shape == (0, 3)


# ============================================================
# Configuration
# ============================================================

class TestProblemConfiguration:
    """Tests for configurable builder behavior."""

    def test_custom_config(self, fake_env, tool_path):
        config = PlannerConfig(
            start_fixed=True, collision_continuous=True, collision_gap=2,
            safety_margin=0.05, safety_coeff=3.0, rot_coeffs=[1.0, 1.0, 1.0],
        )
        problem = build_problem(fake_env, tool_path, config)
        assert problem.start_fixed is True
        collision = problem.costs[-1]
        assert collision.continuous is True
        assert list(collision.steps) == [0, 2]
        assert collision.safety_margins.at(0) == (0.05, 3.0)
        np.testing.assert_array_equal(problem.pose_constraints[0].rot_coeffs, 1.0)

    def test_per_step_safety_margins(self, fake_env, tool_path):
        margins = SafetyMarginTable(
            distances=[0.01, 0.02, 0.03, 0.04], coeffs=[1.0, 2.0, 3.0, 4.0],
        )
        problem = build_problem(fake_env, tool_path, safety_margins=margins)
        assert problem.costs[-1].safety_margins is margins

    def test_safety_margin_length_mismatch_raises(self, fake_env, tool_path):
        with pytest.raises(ValueError):
            build_problem(
                fake_env, tool_path,
                safety_margins=SafetyMarginTable.uniform(2, 0.025, 20.0),
            )

    def test_default_names_match_workcell(self):
        config = PlannerConfig()
        assert config.manipulator == iiwa7.MANIPULATOR
        assert config.held_link == iiwa7.HELD_LINK
        assert config.stationary_link == iiwa7.STATIONARY_LINK

    def test_builder_does_not_depend_on_workcell_model(self):
        import cartesian_trajopt.problem as problem_module

        assert "iiwa7" not in vars(problem_module)

    def test_invalid_config_raises(self):
        with pytest.raises(ValueError):
            PlannerConfig(pos_coeffs=[-1.0, 0.0, 0.0])
        with pytest.raises(ValueError):
            PlannerConfig(collision_gap=0)

    def test_build_is_idempotent(self, fake_env, tool_path):
        first = build_problem(fake_env, tool_path)
        second = build_problem(fake_env, tool_path)
        assert first.to_dict() == second.to_dict()

    def test_does_not_change_environment_state(self, fake_env, tool_path):
        before = fake_env.q.copy()
        build_problem(fake_env, tool_path)
        np.testing.assert_array_equal(fake_env.q, before)


# ============================================================
# Failures
# ============================================================

class TestProblemErrors:
    """Tests for environment lookups that fail."""

    def test_missing_manipulator(self, fake_env, tool_path):
        with pytest.raises(MissingManipulator):
            build_problem(fake_env, tool_path, PlannerConfig(manipulator="left_arm"))

    def test_missing_stationary_link(self, fake_env, tool_path):
        with pytest.raises(MissingLink) as exc_info:
            build_problem(
                fake_env, tool_path, PlannerConfig(stationary_link="polisher"),
            )
        assert exc_info.value.name == "polisher"

    def test_missing_held_link(self, fake_env, tool_path):
        with pytest.raises(MissingLink):
            build_problem(fake_env, tool_path, PlannerConfig(held_link="gripper"))


# ============================================================
# Workcell
# ============================================================

class TestWorkcellProblem:
    """Problem construction against the iiwa7 workcell."""

    def test_sample_scan(self, workcell_env):
        tool_path = load_tool_path(SAMPLE_SCAN)
        problem = build_problem(workcell_env, tool_path)
        assert problem.n_steps == len(tool_path) == 16
        assert problem.num_joints == 7
        np.testing.assert_allclose(problem.init_traj[0], iiwa7.Q0_PUZZLE)
        for term in problem.pose_constraints:
            np.testing.assert_allclose(term.xyz, iiwa7.GRINDER_POSITION, atol=1e-12)
            np.testing.assert_allclose(
                term.target_matrix[:3, :3], iiwa7.GRINDER_ROTATION, atol=1e-9,
            )
