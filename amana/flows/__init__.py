"""Intent schemas and the flow registry."""
