"""Sphere-based collision checking for robotic manipulators."""

from .collision_checker import (
    GROUND,
    CollisionChecker,
    CollisionConfig,
    CollisionSphere,
    ContactResult,
)
from .distance import point_segment_distance, segment_distance

__all__ = [
    "GROUND",
    "CollisionChecker",
    "CollisionConfig",
    "CollisionSphere",
    "ContactResult",
    "point_segment_distance",
    "segment_distance",
]
