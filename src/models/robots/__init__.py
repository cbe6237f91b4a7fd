"""Robot model definitions."""
