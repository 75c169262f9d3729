"""Domain entities and value objects (pure, no I/O)."""
