"""Gallery framework -- cross-cutting infrastructure (logging)."""
