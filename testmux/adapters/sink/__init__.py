"""Sink adapters for the merged report stream and diagnostics."""
