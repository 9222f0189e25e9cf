"""Tests for watchdog-based file change watching."""

import asyncio
import os
from pathlib import Path

import pytest
from watchdog.events import FileClosedNoWriteEvent, FileModifiedEvent, FileMovedEvent

from testmux.adapters.triggers.file_watcher import (
    FileChangeSource,
    FileChangeWatcher,
    _ChangeHandler,
)
from testmux.core.models import TriggerEvent, TriggerSource


class RecordingLoop:
    """Stands in for the event loop, recording scheduled callbacks."""

    def __init__(self):
        self.calls = []

    def call_soon_threadsafe(self, callback, *args):
        self.calls.append(args)


class TestChangeHandler:
    """Event filtering on the observer thread."""

    def test_forwards_change_to_watched_file(self, tmp_path: Path):
        target = os.path.abspath(tmp_path / "a.spec.js")
        loop = RecordingLoop()
        handler = _ChangeHandler(loop, print, frozenset({target}))

        handler.on_any_event(FileModifiedEvent(target))

        assert loop.calls == [(target,)]

    def test_ignores_unwatched_sibling(self, tmp_path: Path):
        loop = RecordingLoop()
        handler = _ChangeHandler(loop, print, frozenset({str(tmp_path / "a.spec.js")}))

        handler.on_any_event(FileModifiedEvent(str(tmp_path / "b.spec.js")))

        assert loop.calls == []

    def test_move_onto_watched_file_counts(self, tmp_path: Path):
        """Editors that save via rename still trigger."""
        target = os.path.abspath(tmp_path / "a.spec.js")
        loop = RecordingLoop()
        handler = _ChangeHandler(loop, print, frozenset({target}))

        handler.on_any_event(FileMovedEvent(str(tmp_path / ".a.spec.js.swp"), target))

        assert loop.calls == [(target,)]

    def test_ignores_read_only_access(self, tmp_path: Path):
        loop = RecordingLoop()
        handler = _ChangeHandler(loop, print, None)

        handler.on_any_event(FileClosedNoWriteEvent(str(tmp_path / "a.spec.js")))

        assert loop.calls == []


def test_watcher_splits_files_and_directories(tmp_path: Path):
    spec = tmp_path / "a.spec.js"
    spec.write_text("")

    watcher = FileChangeWatcher([spec, tmp_path])

    assert watcher.files == frozenset({os.path.abspath(spec)})
    assert watcher.directories == (os.path.abspath(tmp_path),)
    assert not watcher.running


@pytest.mark.asyncio
async def test_file_change_source_publishes_on_write(tmp_path: Path):
    """A real write to a watched file becomes a FILE_CHANGE trigger."""
    spec = tmp_path / "a.spec.js"
    spec.write_text("it('works')\n")
    events: asyncio.Queue[TriggerEvent] = asyncio.Queue()
    source = FileChangeSource([spec])

    task = asyncio.create_task(source.listen(events.put_nowait))
    await asyncio.sleep(0.2)
    assert source.watcher.running

    spec.write_text("it('still works')\n")
    event = await asyncio.wait_for(events.get(), timeout=5)

    assert event.source is TriggerSource.FILE_CHANGE
    assert event.payload == os.path.abspath(spec)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not source.watcher.running
