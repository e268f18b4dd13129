"""Service layer for the reward engine."""
