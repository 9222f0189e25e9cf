"""Filesystem change watching via watchdog.

Watchdog delivers events on its observer thread; they are handed to the
event loop with call_soon_threadsafe so everything downstream stays
single-threaded.
"""

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from testmux.core.models import TriggerEvent, TriggerSource
from testmux.core.ports import TriggerSourcePort

logger = logging.getLogger(__name__)

# Access-only events that do not change file contents
IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


class _ChangeHandler(FileSystemEventHandler):
    """Forwards relevant watchdog events to the event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[str], None],
        files: frozenset[str] | None,
    ):
        super().__init__()
        self.loop = loop
        self.callback = callback
        self.files = files

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in IGNORED_EVENT_TYPES:
            return

        paths = [os.fsdecode(event.src_path)]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            paths.append(os.fsdecode(dest_path))

        for path in paths:
            if self.files is None or os.path.abspath(path) in self.files:
                self.loop.call_soon_threadsafe(self.callback, path)
                return


class FileChangeWatcher:
    """Watches files and directories, reporting changed paths.

    Files are watched through their parent directory and filtered to the
    exact file set; directories are watched recursively.
    """

    def __init__(self, paths: Sequence[Path]):
        self.files = frozenset(
            os.path.abspath(p) for p in paths if not Path(p).is_dir()
        )
        self.directories = tuple(
            os.path.abspath(p) for p in paths if Path(p).is_dir()
        )
        self._observer: BaseObserver | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(
        self, loop: asyncio.AbstractEventLoop, callback: Callable[[str], None]
    ) -> None:
        """Start the observer thread."""
        if self._observer is not None:
            return

        observer = Observer()
        if self.files:
            file_handler = _ChangeHandler(loop, callback, self.files)
            for parent in sorted({os.path.dirname(f) for f in self.files}):
                if os.path.isdir(parent):
                    observer.schedule(file_handler, parent, recursive=False)
        if self.directories:
            dir_handler = _ChangeHandler(loop, callback, None)
            for directory in self.directories:
                observer.schedule(dir_handler, directory, recursive=True)

        observer.start()
        self._observer = observer
        logger.debug(
            f"Watching {len(self.files)} files and {len(self.directories)} directories"
        )

    def stop(self) -> None:
        """Stop the observer thread."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None


class FileChangeSource(TriggerSourcePort):
    """Publishes a FILE_CHANGE trigger for every change to the watched files."""

    def __init__(self, paths: Sequence[Path]):
        self.watcher = FileChangeWatcher(paths)

    async def listen(self, publish: Callable[[TriggerEvent], None]) -> None:
        def on_change(path: str) -> None:
            publish(TriggerEvent(source=TriggerSource.FILE_CHANGE, payload=path))

        self.watcher.start(asyncio.get_running_loop(), on_change)
        try:
            await asyncio.Event().wait()
        finally:
            self.watcher.stop()
