"""Deterministic systems: RNG and world generation."""
