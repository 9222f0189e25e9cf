"""External adapters for testmux.

This package contains everything that touches the outside world and
provides implementations of the core port interfaces.

Adapter Organization:

- discovery/: Test file discovery (pathlib globbing)
- build/: Build tool invocation (command line, watchdog-driven rebuilds)
- process/: Child process spawning (asyncio subprocesses)
- sink/: Report and diagnostic output streams
- triggers/: Watch-mode change signals (file watcher, dev-server channel)
- cli/: Command-line surface
"""
