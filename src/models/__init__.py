"""Robot and workcell models."""
