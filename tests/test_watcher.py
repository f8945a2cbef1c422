from __future__ import annotations

import asyncio
import unittest

from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from cuesync.commands import _watch
from cuesync.config import Settings
from cuesync.coordinator import SyncCoordinator
from cuesync.state import StateStore, default_state_path
from cuesync.storage import FileSystemStore
from cuesync.watcher import DocumentWatcher, _EventHandler
from tests.helpers.vault import make_vault, read_doc


class TestDocumentWatcher(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.root = make_vault({"topic.md": "Body\n", "notes/topic-cue.md": ""})
        self.store = FileSystemStore(self.root)
        self.changed = []
        self.watcher = DocumentWatcher(self.store, self.changed.append, asyncio.get_running_loop())
        self.handler = _EventHandler(self.watcher)

    async def asyncTearDown(self) -> None:
        self.watcher.stop()

    async def flush(self) -> None:
        await asyncio.sleep(0.01)

    async def test_markdown_events_reach_the_loop(self) -> None:
        self.handler.on_modified(FileModifiedEvent(str(self.root / "topic.md")))
        self.handler.on_created(FileCreatedEvent(str(self.root / "notes" / "topic-cue.md")))
        await self.flush()
        self.assertEqual(self.changed, ["topic.md", "notes/topic-cue.md"])

    async def test_move_reports_destination(self) -> None:
        event = FileMovedEvent(str(self.root / "draft.tmp"), str(self.root / "topic.md"))
        self.handler.on_moved(event)
        await self.flush()
        self.assertEqual(self.changed, ["topic.md"])

    async def test_irrelevant_events_are_ignored(self) -> None:
        self.handler.on_modified(FileModifiedEvent(str(self.root / "image.png")))
        self.handler.on_modified(FileModifiedEvent(str(self.root / ".obsidian" / "workspace.md")))
        self.handler.on_modified(DirModifiedEvent(str(self.root / "notes.md")))
        self.handler.on_modified(FileModifiedEvent("/elsewhere/outside.md"))
        await self.flush()
        self.assertEqual(self.changed, [])

    async def test_live_observer_reports_writes(self) -> None:
        self.watcher.start()
        self.assertTrue(self.watcher.running)
        await asyncio.sleep(0.2)
        (self.root / "topic.md").write_text("Body[^a].\n", encoding="utf-8")
        for _ in range(50):
            if "topic.md" in self.changed:
                break
            await asyncio.sleep(0.1)
        self.assertIn("topic.md", self.changed)
        self.watcher.stop()
        self.assertFalse(self.watcher.running)


class TestWatchCommand(unittest.IsolatedAsyncioTestCase):
    async def test_watch_syncs_edited_source(self) -> None:
        root = make_vault({"topic.md": "Body\n", "topic-cue.md": ""})
        store = FileSystemStore(root)
        state = StateStore(default_state_path(root), settings=Settings(auto_sync_on_change=True, debounce_seconds=0.05))
        coordinator = SyncCoordinator(store, state, release_delay=0)
        stop = asyncio.Event()

        task = asyncio.create_task(_watch(coordinator, stop))
        await asyncio.sleep(0.3)
        (root / "topic.md").write_text("Body[^a].\n\n[^a]: watched\n", encoding="utf-8")
        for _ in range(50):
            if "[^a]: watched" in read_doc(root, "topic-cue.md"):
                break
            await asyncio.sleep(0.1)
        stop.set()
        await task

        self.assertIn("[^a]: watched", read_doc(root, "topic-cue.md"))
        self.assertIn("topic.md", state.relationships)


if __name__ == "__main__":
    unittest.main()
