"""Test suite for testmux.

Organized into three categories:

1. core/: Unit tests for the coordinator core
   - Minimal dependencies, fast execution
   - Uses in-memory fakes for ports

2. adapters/: Integration tests for adapter implementations
   - Tests against real subprocesses, sockets and mocked HTTP transports
   - Validates adapter behavior and error handling

3. fakes/: Port implementations for testing
   - In-memory implementations of SinkPort, ProcessSpawnPort, etc.
   - Used by core unit tests
"""
