"""Service layer: validation dispatch, scheduling, execution and collaborators."""
