"""Action dispatch and the productivity backends."""
