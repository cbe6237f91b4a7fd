"""Tests for scan parsing and tool frame construction."""

import numpy as np
import pytest

from cartesian_trajopt import (
    DegenerateNormal,
    MalformedInputRow,
    SurfaceSample,
    ToolFrame,
    ToolPath,
    load_tool_path,
    make_tool_frame,
    read_surface_samples,
)


def _assert_orthonormal(R):
    np.testing.assert_allclose(R.T @ R, np.eye(3), atol=1e-9)
    assert np.isclose(np.linalg.det(R), 1.0)


class TestMakeToolFrame:
    """Frame construction from a single surface sample."""

    @pytest.mark.parametrize("position, normal", [
        ((100.0, 0.0, 0.0), (0.0, 0.0, 1.0)),
        ((10.0, -20.0, 30.0), (0.3, -0.2, 2.0)),
        ((-5.0, 15.0, 20.0), (-0.04, 0.0, 1.0)),
        ((0.0, 0.0, 50.0), (0.0, 0.0, 1.0)),
        ((1.0, 1.0, 1.0), (1.0, 1.0, 1.0)),
    ])
    def test_frame_is_orthonormal_and_right_handed(self, position, normal):
        frame = make_tool_frame(SurfaceSample(np.array(position), np.array(normal)))
        _assert_orthonormal(frame.rotation)
        np.testing.assert_allclose(
            np.cross(frame.x_axis, frame.y_axis), frame.z_axis, atol=1e-9,
        )

    def test_z_axis_is_normalized_normal(self):
        normal = np.array([0.3, -0.2, 2.0])
        frame = make_tool_frame(SurfaceSample(np.array([10.0, -20.0, 30.0]), normal))
        np.testing.assert_allclose(frame.z_axis, normal / np.linalg.norm(normal))

    def test_translation_is_millimeters_to_meters(self):
        position = np.array([123.0, -45.5, 7.25])
        frame = make_tool_frame(SurfaceSample(position, np.array([0.0, 0.0, 1.0])))
        np.testing.assert_array_equal(frame.translation, position / 1000.0)

    def test_x_axis_points_back_to_origin(self):
        """Reference orthogonal to the normal becomes the x-axis."""
        frame = make_tool_frame(
            SurfaceSample(np.array([100.0, 0.0, 0.0]), np.array([0.0, 0.0, 1.0]))
        )
        np.testing.assert_allclose(frame.x_axis, [-1.0, 0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(frame.y_axis, [0.0, -1.0, 0.0], atol=1e-12)

    def test_point_at_origin_uses_fallback_reference(self):
        frame = make_tool_frame(
            SurfaceSample(np.zeros(3), np.array([0.0, 0.0, 1.0]))
        )
        np.testing.assert_allclose(frame.rotation, np.eye(3), atol=1e-12)
        np.testing.assert_array_equal(frame.translation, np.zeros(3))

    def test_reference_parallel_to_normal_uses_fallback(self):
        frame = make_tool_frame(
            SurfaceSample(np.array([0.0, 0.0, 50.0]), np.array([0.0, 0.0, 1.0]))
        )
        _assert_orthonormal(frame.rotation)
        np.testing.assert_allclose(frame.z_axis, [0.0, 0.0, 1.0])

    def test_zero_normal_raises(self):
        with pytest.raises(DegenerateNormal) as exc_info:
            make_tool_frame(SurfaceSample(np.ones(3), np.zeros(3), line_number=9))
        assert exc_info.value.line_number == 9


class TestToolFrame:
    """ToolFrame value semantics."""

    def test_arrays_are_read_only(self):
        frame = ToolFrame(rotation=np.eye(3), translation=np.zeros(3))
        with pytest.raises(ValueError):
            frame.translation[0] = 1.0
        with pytest.raises(ValueError):
            frame.rotation[0, 0] = 2.0

    def test_identity_quaternion(self):
        frame = ToolFrame(rotation=np.eye(3), translation=np.zeros(3))
        np.testing.assert_allclose(frame.quaternion_wxyz, [1.0, 0.0, 0.0, 0.0])

    def test_matrix_round_trip(self):
        frame = make_tool_frame(
            SurfaceSample(np.array([10.0, -20.0, 30.0]), np.array([0.3, -0.2, 2.0]))
        )
        again = ToolFrame.from_matrix(frame.matrix)
        np.testing.assert_array_equal(again.rotation, frame.rotation)
        np.testing.assert_array_equal(again.translation, frame.translation)


class TestReadSurfaceSamples:
    """Scan file parsing."""

    def test_skips_header_and_blank_lines(self, write_scan):
        path = write_scan(["1,2,3,0,0,1", "", "4, 5, 6, 0, 1, 0"])
        samples = read_surface_samples(path)
        assert len(samples) == 2
        np.testing.assert_array_equal(samples[1].position, [4.0, 5.0, 6.0])
        np.testing.assert_array_equal(samples[1].normal, [0.0, 1.0, 0.0])
        assert [s.line_number for s in samples] == [3, 5]

    def test_header_lines_are_never_parsed(self, write_scan):
        path = write_scan(["1,2,3,0,0,1"], header="not,a,row\nat all\n")
        assert len(read_surface_samples(path)) == 1

    def test_wrong_field_count_reports_line(self, write_scan):
        path = write_scan(["1,2,3,0,0,1", "1,2,3,0,1"])
        with pytest.raises(MalformedInputRow) as exc_info:
            read_surface_samples(path)
        assert exc_info.value.line_number == 4

    def test_non_numeric_field(self, write_scan):
        path = write_scan(["1,2,abc,0,0,1"])
        with pytest.raises(MalformedInputRow) as exc_info:
            read_surface_samples(path)
        assert exc_info.value.line_number == 3

    def test_non_finite_field(self, write_scan):
        path = write_scan(["1,2,nan,0,0,1"])
        with pytest.raises(MalformedInputRow):
            read_surface_samples(path)


class TestLoadToolPath:
    """Scan file to tool path."""

    def test_one_frame_per_row(self, write_scan):
        rows = [f"{x},15,20,0,0,1" for x in range(-20, 21, 10)]
        path = load_tool_path(write_scan(rows))
        assert isinstance(path, ToolPath)
        assert len(path) == 5
        np.testing.assert_allclose(path.positions[:, 0], [-0.02, -0.01, 0.0, 0.01, 0.02])
        assert path.matrices.shape == (5, 4, 4)

    def test_header_only_gives_empty_path(self, write_scan):
        path = load_tool_path(write_scan([]))
        assert len(path) == 0
        assert path.positions.shape == (0, 3)

    def test_degenerate_normal_reports_line(self, write_scan):
        path = write_scan(["1,2,3,0,0,1", "1,2,3,0,0,1", "1,2,3,0,0,0"])
        with pytest.raises(DegenerateNormal) as exc_info:
            load_tool_path(path)
        assert exc_info.value.line_number == 5

    def test_first_bad_row_wins(self, write_scan):
        """An early zero normal is reported before a later malformed row."""
        path = write_scan(["1,2,3,0,0,0", "1,2,3,0,0,1", "1,2,3"])
        with pytest.raises(DegenerateNormal) as exc_info:
            load_tool_path(path)
        assert exc_info.value.line_number == 3

    def test_malformed_row_yields_no_path(self, write_scan):
        with pytest.raises(MalformedInputRow):
            load_tool_path(write_scan(["1,2,3,0,0,1", "oops"]))

    def test_single_row_at_origin(self, write_scan):
        path = load_tool_path(write_scan(["0,0,0,0,0,1"]))
        assert len(path) == 1
        frame = path[0]
        np.testing.assert_array_equal(frame.translation, np.zeros(3))
        np.testing.assert_allclose(frame.z_axis, [0.0, 0.0, 1.0])
        _assert_orthonormal(frame.rotation)

    def test_slicing_returns_tool_path(self, write_scan):
        path = load_tool_path(write_scan(["1,0,0,0,0,1", "2,0,0,0,0,1", "3,0,0,0,0,1"]))
        head = path[:2]
        assert isinstance(head, ToolPath)
        assert len(head) == 2
        assert head[1] is path[1]
