"""Tool path generation from surface scan files.

A scan file is a comma-separated text file. The first two lines are a
header and are ignored; every following non-blank line holds one surface
sample::

    x,y,z,i,j,k

with the position in millimeters and an unnormalized surface normal.
Each sample becomes a ``ToolFrame`` whose z-axis is the normal and whose
translation is in meters.
"""

import logging
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import DegenerateNormal, MalformedInputRow

logger = logging.getLogger(__name__)

MM_PER_M = 1000.0
HEADER_LINES = 2
FIELDS_PER_ROW = 6

_EPS = 1e-12


@dataclass(frozen=True, eq=False)
class SurfaceSample:
    """One scanned surface point.

    Attributes:
        position: Point on the surface (3,) [mm].
        normal: Surface normal (3,), not normalized.
        line_number: 1-based line in the source file.
    """

    position: np.ndarray
    normal: np.ndarray
    line_number: int = 0


def _readonly(values, shape: tuple[int, ...]) -> np.ndarray:
    arr = np.array(values, dtype=np.float64).reshape(shape)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ToolFrame:
    """Oriented tool frame at one trajectory step.

    Attributes:
        rotation: Orthonormal rotation (3, 3); columns are the x, y, z axes.
        translation: Frame origin (3,) [m].
    """

    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "rotation", _readonly(self.rotation, (3, 3)))
        object.__setattr__(
            self, "translation", _readonly(self.translation, (3,)),
        )

    @property
    def x_axis(self) -> np.ndarray:
        return self.rotation[:, 0]

    @property
    def y_axis(self) -> np.ndarray:
        return self.rotation[:, 1]

    @property
    def z_axis(self) -> np.ndarray:
        return self.rotation[:, 2]

    @property
    def matrix(self) -> np.ndarray:
        """Homogeneous transform (4, 4)."""
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    @property
    def quaternion_wxyz(self) -> np.ndarray:
        """Rotation as a unit quaternion (w, x, y, z)."""
        x, y, z, w = Rotation.from_matrix(self.rotation).as_quat()
        return np.array([w, x, y, z])

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "ToolFrame":
        T = np.asarray(T, dtype=np.float64)
        return cls(rotation=T[:3, :3], translation=T[:3, 3])

    def to_dict(self) -> dict:
        return {
            "rotation": self.rotation.tolist(),
            "translation": self.translation.tolist(),
        }


class ToolPath(Sequence):
    """Immutable ordered sequence of tool frames, one per trajectory step."""

    def __init__(self, frames=()):
        self._frames = tuple(frames)

    def __len__(self) -> int:
        return len(self._frames)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return ToolPath(self._frames[index])
        return self._frames[index]

    def __iter__(self) -> Iterator[ToolFrame]:
        return iter(self._frames)

    def __repr__(self) -> str:
        return f"ToolPath(n_frames={len(self._frames)})"

    @property
    def positions(self) -> np.ndarray:
        """Frame origins (N, 3) [m]."""
        if not self._frames:
            return np.zeros((0, 3))
        return np.array([f.translation for f in self._frames])

    @property
    def matrices(self) -> np.ndarray:
        """Homogeneous transforms (N, 4, 4)."""
        if not self._frames:
            return np.zeros((0, 4, 4))
        return np.array([f.matrix for f in self._frames])


def _fallback_reference(z_axis: np.ndarray) -> np.ndarray:
    """World axis least aligned with *z_axis*."""
    return np.eye(3)[int(np.argmin(np.abs(z_axis)))]


def make_tool_frame(sample: SurfaceSample) -> ToolFrame:
    """Build a right-handed tool frame from a surface sample.

    The normal becomes the z-axis. The direction from the point back to
    the part origin serves as a reference for the x-axis; it need not be
    orthogonal to the normal, the cross products below make the basis
    orthonormal. When that reference is unusable (point at the origin or
    reference parallel to the normal) the world axis least aligned with
    the normal is used instead.

    Args:
        sample: Surface sample with position in millimeters.

    Returns:
        ToolFrame with translation in meters.

    Raises:
        DegenerateNormal: If the sample normal has zero length.
    """
    position = np.asarray(sample.position, dtype=np.float64) / MM_PER_M
    normal = np.asarray(sample.normal, dtype=np.float64)

    norm = np.linalg.norm(normal)
    if norm < _EPS:
        raise DegenerateNormal(sample.line_number)
    z_axis = normal / norm

    y_axis = None
    pos_norm = np.linalg.norm(position)
    if pos_norm > _EPS:
        reference = -position / pos_norm
        y_axis = np.cross(z_axis, reference)
        if np.linalg.norm(y_axis) < 1e-9:
            y_axis = None

    if y_axis is None:
        y_axis = np.cross(z_axis, _fallback_reference(z_axis))

    y_axis = y_axis / np.linalg.norm(y_axis)
    x_axis = np.cross(y_axis, z_axis)
    x_axis = x_axis / np.linalg.norm(x_axis)

    return ToolFrame(
        rotation=np.column_stack([x_axis, y_axis, z_axis]),
        translation=position,
    )


def _parse_row(line: str, line_number: int) -> SurfaceSample:
    fields = [cell.strip() for cell in line.split(",")]
    if len(fields) != FIELDS_PER_ROW:
        raise MalformedInputRow(
            line_number, line,
            f"expected {FIELDS_PER_ROW} fields, got {len(fields)}",
        )

    values = []
    for cell in fields:
        try:
            value = float(cell)
        except ValueError:
            raise MalformedInputRow(
                line_number, line, f"non-numeric field {cell!r}",
            ) from None
        if not math.isfinite(value):
            raise MalformedInputRow(
                line_number, line, f"non-finite field {cell!r}",
            )
        values.append(value)

    return SurfaceSample(
        position=np.array(values[:3]),
        normal=np.array(values[3:]),
        line_number=line_number,
    )


def _iter_samples(path: str | Path) -> Iterator[SurfaceSample]:
    with open(path) as f:
        for line_number, raw in enumerate(f, start=1):
            if line_number <= HEADER_LINES:
                continue
            line = raw.strip()
            if not line:
                continue
            yield _parse_row(line, line_number)


def read_surface_samples(path: str | Path) -> list[SurfaceSample]:
    """Read all surface samples from a scan file.

    Raises:
        MalformedInputRow: On the first row that cannot be parsed.
    """
    return list(_iter_samples(path))


def load_tool_path(path: str | Path) -> ToolPath:
    """Load a scan file and convert it into a tool path.

    Rows are converted as they are read, so the first bad row stops
    loading whichever error it raises. An empty file (header only) yields
    an empty path.

    Raises:
        MalformedInputRow: Bad field count or value.
        DegenerateNormal: Zero-length normal.
    """
    path_frames = ToolPath([make_tool_frame(s) for s in _iter_samples(path)])
    logger.info("Loaded %d tool frames from %s", len(path_frames), path)
    return path_frames
