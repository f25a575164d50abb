"""Domain layer: rich models with no persistence concerns."""
