"""Unit tests for the coordinator core."""
