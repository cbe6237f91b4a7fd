"""Pinocchio-based forward kinematics."""

from .pinocchio_kinematics import PinocchioKinematics

__all__ = ["PinocchioKinematics"]
