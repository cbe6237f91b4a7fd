"""KUKA robot models."""
