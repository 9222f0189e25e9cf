"""Command-line interface adapter.

Parses the watch flag and test paths and dispatches to RunPort.
"""
