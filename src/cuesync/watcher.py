"""Vault change notifications using watchdog.

The watchdog observer runs on its own thread; events for markdown files are
handed to the asyncio loop with ``call_soon_threadsafe`` so the coordinator
only ever runs on the loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import DOCUMENT_EXTENSION
from .storage import FileSystemStore

logger = logging.getLogger(__name__)


class _EventHandler(FileSystemEventHandler):
    """Watchdog handler that feeds events into the watcher."""

    def __init__(self, watcher: "DocumentWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_created(self, event):
        if not event.is_directory:
            self._watcher._on_fs_event(event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self._watcher._on_fs_event(event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self._watcher._on_fs_event(event.dest_path)


class DocumentWatcher:
    """Watches a vault and reports changed documents by id.

    Lifecycle:
        1. ``__init__(store, on_changed, loop)``
        2. ``start()`` starts the observer thread.
        3. Each change to a ``.md`` file calls ``on_changed(doc_id)`` on the loop.
        4. ``stop()`` tears the observer down.
    """

    def __init__(
        self,
        store: FileSystemStore,
        on_changed: Callable[[str], None],
        loop: asyncio.AbstractEventLoop,
    ):
        self.store = store
        self._on_changed = on_changed
        self._loop = loop
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        self._observer = Observer()
        self._observer.schedule(_EventHandler(self), str(self.store.root), recursive=True)
        self._observer.daemon = True
        self._observer.start()
        logger.info("Watching %s", self.store.root)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None
        logger.info("Stopped watching %s", self.store.root)

    def _on_fs_event(self, src_path) -> None:
        if isinstance(src_path, bytes):
            src_path = src_path.decode("utf-8", errors="replace")
        if not str(src_path).endswith(DOCUMENT_EXTENSION):
            return
        doc_id = self.store.doc_id_for(src_path)
        if not doc_id or any(part.startswith(".") for part in doc_id.split("/")):
            return
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._on_changed, doc_id)
