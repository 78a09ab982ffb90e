"""Tracking state: in-memory market store and whole-state JSON snapshots."""
