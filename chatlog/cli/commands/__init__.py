"""Top-level command groups, discovered by the registry."""
