"""Natural-language layer: intent classification and slot extraction."""
