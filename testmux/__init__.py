"""testmux: build, run and merge test output into one ordered stream."""

__version__ = "0.1.0"
