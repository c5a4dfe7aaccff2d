"""Runtime primitives: locks, delivery dedup and wiring."""
