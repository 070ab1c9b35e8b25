"""Logging, event feed, replay and persistence helpers."""
