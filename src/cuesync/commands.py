from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .coordinator import STATUS_FAILED, SyncCoordinator
from .state import StateStore, default_state_path
from .storage import FileSystemStore

logger = logging.getLogger(__name__)


def open_vault(vault: Path, state_path: Path | None = None, notifier=None):
    store = FileSystemStore(vault)
    state = StateStore.load(state_path or default_state_path(store.root))
    return SyncCoordinator(store, state, notifier=notifier)


def _outcome_code(outcome) -> int:
    return 2 if outcome.status == STATUS_FAILED else 0


def run_forward(vault: Path, document: str, state_path: Path | None = None, notifier=None):
    coordinator = open_vault(vault, state_path, notifier)
    outcome = asyncio.run(coordinator.sync_forward(document))
    if outcome.message and outcome.status != STATUS_FAILED:
        coordinator.notify(outcome.message)
    return _outcome_code(outcome)


def run_backward(vault: Path, document: str, state_path: Path | None = None, notifier=None):
    coordinator = open_vault(vault, state_path, notifier)
    outcome = asyncio.run(coordinator.sync_backward(document))
    if outcome.message and outcome.status != STATUS_FAILED:
        coordinator.notify(outcome.message)
    return _outcome_code(outcome)


def run_sync_all(vault: Path, state_path: Path | None = None, notifier=None):
    coordinator = open_vault(vault, state_path, notifier)
    report = asyncio.run(coordinator.sync_all_forward())
    return 2 if report.errors else 0


def run_rescan(vault: Path, state_path: Path | None = None, notifier=None):
    coordinator = open_vault(vault, state_path, notifier)
    report = asyncio.run(coordinator.rescan())
    coordinator.notify(
        f"Relationships: added {report.added}, updated {report.updated}, removed {report.removed}. "
        f"Total: {len(coordinator.relationships)}."
    )
    return 0


def run_arrange(vault: Path, document: str, state_path: Path | None = None, notifier=None):
    coordinator = open_vault(vault, state_path, notifier)
    cue_path, summary_path = asyncio.run(coordinator.ensure_derived_documents(document))
    coordinator.notify(f"Arranged {document}: cue {cue_path}, summary {summary_path}.")
    return 0


def run_locate(vault: Path, document: str, ref: str, state_path: Path | None = None, notifier=None):
    coordinator = open_vault(vault, state_path, notifier)
    location = asyncio.run(coordinator.find_source_reference(document, ref))
    if location is None:
        coordinator.notify(f"Reference [^{ref}] not found in source.")
        return 2
    coordinator.notify(f"{location.source_path}:{location.line}:{location.col}")
    return 0


async def _watch(coordinator: SyncCoordinator, stop: asyncio.Event | None = None):
    from .watcher import DocumentWatcher

    loop = asyncio.get_running_loop()
    watcher = DocumentWatcher(coordinator.store, coordinator.on_document_changed, loop)
    stop = stop or asyncio.Event()
    await coordinator.rescan()
    watcher.start()
    try:
        await stop.wait()
    finally:
        watcher.stop()
        coordinator.shutdown()
        await coordinator.drain()


def run_watch(vault: Path, state_path: Path | None = None, notifier=None):
    coordinator = open_vault(vault, state_path, notifier)
    if not coordinator.settings.auto_sync_on_change:
        logger.warning("auto_sync_on_change is disabled; enabling it for this watch session")
        coordinator.settings.auto_sync_on_change = True
    try:
        asyncio.run(_watch(coordinator))
    except KeyboardInterrupt:
        logger.info("Watch interrupted")
    return 0
