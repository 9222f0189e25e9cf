"""Discovery adapters for resolving test files on disk."""
