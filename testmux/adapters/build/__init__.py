"""Build adapters producing test binaries.

Implementations support:
- One-shot builds of a configured command
- Continuous rebuilds on source changes (watch mode)
"""
