"""Domain layer - pure value objects and records, zero I/O."""
