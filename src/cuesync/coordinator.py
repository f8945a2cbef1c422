"""Sync passes between Source documents and their Cue documents.

Every pass reads both documents once, reconciles them, and writes back only
when the rendered text differs from what is stored. A document pair that is
mid-pass is marked running; further requests for that pair are dropped, not
queued, until the pass finishes and a short release delay has elapsed. This
keeps the change events produced by a pass's own writes from starting a
pass back the other way.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from .annotations import Span, find_first_reference, line_col_for_offset, parse_definitions_only
from .config import FLAG_RELEASE_DELAY
from .debounce import Debouncer
from .errors import CueNotFound, CueSyncError, DocumentNotFound, InvalidRole
from .generator import (
    CUE_PLACEHOLDER,
    SOURCE_PLACEHOLDER,
    initial_cue_content,
    initial_summary_content,
    render_derived_document,
    render_link,
)
from .reconcile import reconcile_backward, reconcile_forward
from .relationships import RescanReport, rescan
from .roles import (
    ROLE_CUE,
    ROLE_SOURCE,
    ROLE_SUMMARY,
    candidate_source_paths,
    detect_role,
    expected_derived_path,
    normalize_path,
    resolve_source_from_derived,
    split_doc_id,
)
from .state import StateStore
from .storage import DocumentStore

logger = logging.getLogger(__name__)

DIRECTION_FORWARD = "forward"
DIRECTION_BACKWARD = "backward"

STATUS_WRITTEN = "written"
STATUS_UNCHANGED = "unchanged"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

PAIR_IDLE = "idle"
PAIR_RUNNING = "running"

BATCH_PROGRESS_INTERVAL = 50

Notifier = Callable[[str], None]


@dataclass
class SyncOutcome:
    direction: str
    document: str
    status: str
    counterpart: Optional[str] = None
    message: str = ""

    @property
    def written(self) -> bool:
        return self.status == STATUS_WRITTEN


@dataclass
class BatchReport:
    total: int = 0
    processed: int = 0
    skipped_derived: int = 0
    skipped_no_cue: int = 0
    errors: int = 0

    def summary(self) -> str:
        return (
            f"Sync (forward) complete. Processed: {self.processed}, "
            f"Skipped (derived/no cue): {self.skipped_derived + self.skipped_no_cue}, "
            f"Errors: {self.errors}. Total documents: {self.total}."
        )


@dataclass
class ReferenceLocation:
    source_path: str
    ref: str
    span: Span
    line: int
    col: int


def _log_notice(message: str) -> None:
    logger.info("Notice: %s", message)


class SyncCoordinator:
    def __init__(
        self,
        store: DocumentStore,
        state: StateStore,
        notifier: Optional[Notifier] = None,
        release_delay: float = FLAG_RELEASE_DELAY,
    ):
        self.store = store
        self.state = state
        self.release_delay = release_delay
        self._notify = notifier or _log_notice
        self._running: set[str] = set()
        delay = state.settings.debounce_seconds
        self._forward_debouncer = Debouncer(self.sync_forward, delay=delay, name="forward sync")
        self._backward_debouncer = Debouncer(self.sync_backward, delay=delay, name="backward sync")

    @property
    def settings(self):
        return self.state.settings

    @property
    def relationships(self):
        return self.state.relationships

    # ------------------------------------------------------------------
    # Pair bookkeeping
    # ------------------------------------------------------------------

    def pair_state(self, source_path: str) -> str:
        return PAIR_RUNNING if normalize_path(source_path) in self._running else PAIR_IDLE

    @property
    def busy(self) -> bool:
        return bool(self._running)

    def pair_key(self, doc_id: str) -> str:
        """Source path owning ``doc_id``, best effort and without side effects."""
        path = normalize_path(doc_id)
        if detect_role(path, self.settings) not in (ROLE_CUE, ROLE_SUMMARY):
            return path
        entry = self.relationships.find_by_derived(path)
        if entry is not None:
            return entry.source_path
        for candidate in candidate_source_paths(path, self.settings):
            if self.store.is_document(candidate):
                return candidate
        return path

    @asynccontextmanager
    async def _pair_guard(self, key: str):
        self._running.add(key)
        try:
            yield
        finally:
            await asyncio.sleep(self.release_delay)
            self._running.discard(key)

    def notify(self, message: str) -> None:
        self._notify(message)

    def _update_relationship(self, source_path: str, **changes) -> None:
        if self.relationships.update(source_path, **changes):
            self.state.save()

    def _failed(self, direction: str, document: str, exc: Exception) -> SyncOutcome:
        label = "Source -> Cue" if direction == DIRECTION_FORWARD else "Cue -> Source"
        if isinstance(exc, CueSyncError):
            logger.warning("[%s] %s: %s", label, document, exc.message)
            message = exc.message
        else:
            logger.exception("[%s] Error during sync for %s", label, document)
            message = f"Error during {label} sync for {document}: {exc}"
        self._notify(message)
        return SyncOutcome(direction, document, STATUS_FAILED, message=message)

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    # ------------------------------------------------------------------
    # Sync passes
    # ------------------------------------------------------------------

    async def sync_forward(self, source_id: str) -> SyncOutcome:
        """Rewrite the Cue of ``source_id`` from the Source's definitions."""
        source_path = normalize_path(source_id)
        key = self.pair_key(source_path)
        if key in self._running:
            logger.info("[Source -> Cue] Skipped for %s: already syncing", source_path)
            return SyncOutcome(DIRECTION_FORWARD, source_path, STATUS_SKIPPED, message="already syncing")

        async with self._pair_guard(key):
            logger.info("[Source -> Cue] Starting for %s", source_path)
            try:
                return await self._forward_pass(source_path)
            except Exception as exc:
                return self._failed(DIRECTION_FORWARD, source_path, exc)
            finally:
                logger.debug("[Source -> Cue] Finished for %s", source_path)

    async def _forward_pass(self, source_path: str) -> SyncOutcome:
        role = detect_role(source_path, self.settings)
        if role != ROLE_SOURCE:
            raise InvalidRole(f"Cannot run Source -> Cue sync from {role or 'non-document'} {source_path}")

        source_text = await self.store.read_document(source_path)
        cue_path = expected_derived_path(source_path, ROLE_CUE, self.settings)
        if not self.store.is_document(cue_path):
            entry = self.relationships.get(source_path)
            if entry is not None and entry.cue_path and self.store.is_document(entry.cue_path):
                cue_path = entry.cue_path
        if not self.store.is_document(cue_path):
            self._update_relationship(source_path, cue_path=None)
            _, basename = split_doc_id(source_path)
            raise CueNotFound(
                f'Cue note for "{basename}" not found at "{cue_path}". Skipping Source -> Cue sync. '
                f"Run arrange to create it.",
                path=cue_path,
            )
        cue_text = await self.store.read_document(cue_path)

        result = reconcile_forward(
            source_text,
            parse_definitions_only(cue_text),
            prune_unreferenced=self.settings.prune_unreferenced_definitions_on_forward_sync,
        )
        if result.changed:
            logger.info("[Source -> Cue] Definitions changed for %s", source_path)
        _, source_basename = split_doc_id(source_path)
        header_link = render_link(self.settings.link_to_source_template, SOURCE_PLACEHOLDER, source_basename)
        new_text = render_derived_document(cue_text, header_link, result.annotations)

        changes = {"cue_path": cue_path}
        if new_text != cue_text:
            await self.store.write_document(cue_path, new_text)
            changes["last_sync_forward"] = self._now_ms()
            logger.info("[Source -> Cue] Updated %s", cue_path)
            outcome = SyncOutcome(DIRECTION_FORWARD, source_path, STATUS_WRITTEN, cue_path, f"Cue updated for {source_basename}.")
        else:
            logger.info("[Source -> Cue] %s is already up to date", cue_path)
            outcome = SyncOutcome(DIRECTION_FORWARD, source_path, STATUS_UNCHANGED, cue_path, f"Cue already up to date for {source_basename}.")
        self._update_relationship(source_path, **changes)
        return outcome

    async def sync_backward(self, cue_id: str) -> SyncOutcome:
        """Rewrite the Source behind ``cue_id`` from the Cue's definitions."""
        cue_path = normalize_path(cue_id)
        key = self.pair_key(cue_path)
        if key in self._running:
            logger.info("[Cue -> Source] Skipped for %s: already syncing", cue_path)
            return SyncOutcome(DIRECTION_BACKWARD, cue_path, STATUS_SKIPPED, message="already syncing")

        async with self._pair_guard(key):
            logger.info("[Cue -> Source] Starting from %s", cue_path)
            try:
                return await self._backward_pass(cue_path)
            except Exception as exc:
                return self._failed(DIRECTION_BACKWARD, cue_path, exc)
            finally:
                logger.debug("[Cue -> Source] Finished for %s", cue_path)

    async def _backward_pass(self, cue_path: str) -> SyncOutcome:
        role = detect_role(cue_path, self.settings)
        if role != ROLE_CUE:
            raise InvalidRole(f"Cue -> Source sync can only run from a cue note, not {role or 'non-document'} {cue_path}")

        cue_text = await self.store.read_document(cue_path)
        source_path = resolve_source_from_derived(cue_path, self.store, self.relationships, self.settings, self.state)
        source_text = await self.store.read_document(source_path)

        result = reconcile_backward(
            source_text,
            parse_definitions_only(cue_text),
            delete_orphaned_references=self.settings.delete_orphaned_references_on_backward_sync,
            append_at_end=self.settings.append_definitions_at_end,
        )

        _, source_basename = split_doc_id(source_path)
        _, cue_basename = split_doc_id(cue_path)
        changes = {"cue_path": cue_path}
        if result.changed:
            await self.store.write_document(source_path, result.text)
            changes["last_sync_backward"] = self._now_ms()
            logger.info("[Cue -> Source] Updated %s", source_path)
            outcome = SyncOutcome(
                DIRECTION_BACKWARD,
                cue_path,
                STATUS_WRITTEN,
                source_path,
                f"Source ({source_basename}) updated from {cue_basename}.",
            )
        else:
            logger.info("[Cue -> Source] %s is already up to date", source_path)
            outcome = SyncOutcome(
                DIRECTION_BACKWARD,
                cue_path,
                STATUS_UNCHANGED,
                source_path,
                f"Source ({source_basename}) already up to date.",
            )
        self._update_relationship(source_path, **changes)
        return outcome

    # ------------------------------------------------------------------
    # Automatic sync
    # ------------------------------------------------------------------

    def on_document_changed(self, doc_id: str) -> None:
        """Schedule a debounced pass for a changed document."""
        if not self.settings.auto_sync_on_change:
            return
        path = normalize_path(doc_id)
        role = detect_role(path, self.settings)
        if role not in (ROLE_SOURCE, ROLE_CUE):
            return
        key = self.pair_key(path)
        if key in self._running:
            logger.info("Change to %s dropped: %s is syncing", path, key)
            return
        if role == ROLE_SOURCE:
            self._forward_debouncer.trigger(path, path)
        else:
            self._backward_debouncer.trigger(path, path)

    def pending(self) -> dict[str, list[str]]:
        return {
            DIRECTION_FORWARD: self._forward_debouncer.pending(),
            DIRECTION_BACKWARD: self._backward_debouncer.pending(),
        }

    async def drain(self) -> None:
        await self._forward_debouncer.drain()
        await self._backward_debouncer.drain()

    def shutdown(self) -> None:
        self._forward_debouncer.cancel()
        self._backward_debouncer.cancel()

    # ------------------------------------------------------------------
    # Corpus-wide operations
    # ------------------------------------------------------------------

    async def sync_all_forward(self) -> BatchReport:
        documents = self.store.list_all_documents()
        report = BatchReport(total=len(documents))
        self._notify(f"Starting Source -> Cue sync for {report.total} notes...")
        try:
            for doc_id in documents:
                if detect_role(doc_id, self.settings) != ROLE_SOURCE:
                    report.skipped_derived += 1
                    continue
                if not self.store.is_document(expected_derived_path(doc_id, ROLE_CUE, self.settings)):
                    report.skipped_no_cue += 1
                    continue
                outcome = await self.sync_forward(doc_id)
                if outcome.status == STATUS_FAILED:
                    report.errors += 1
                else:
                    report.processed += 1
                done = report.processed + report.errors + report.skipped_derived + report.skipped_no_cue
                if done % BATCH_PROGRESS_INTERVAL == 0:
                    percentage = round(done * 100 / report.total)
                    self._notify(f"Syncing Source -> Cue... {percentage}% ({report.processed} sources processed)")
        finally:
            self.state.save()
        self._notify(report.summary())
        logger.info(report.summary())
        return report

    async def rescan(self) -> RescanReport:
        report = rescan(self.relationships, self.store, self.settings)
        if report.changed:
            self.state.save()
        return report

    async def ensure_derived_documents(self, source_id: str):
        """Create the Cue and Summary of ``source_id`` when they are missing.

        Returns ``(cue_path, summary_path)``.
        """
        source_path = normalize_path(source_id)
        role = detect_role(source_path, self.settings)
        if role != ROLE_SOURCE:
            raise InvalidRole(f"Cannot arrange from a {role or 'non-document'} note: {source_path}. Run it from the source note.")
        if not self.store.is_document(source_path):
            raise DocumentNotFound(f"Document not found: {source_path}", path=source_path)

        _, source_basename = split_doc_id(source_path)
        source_link = render_link(self.settings.link_to_source_template, SOURCE_PLACEHOLDER, source_basename)

        cue_path = expected_derived_path(source_path, ROLE_CUE, self.settings)
        if not self.store.is_document(cue_path):
            logger.info("Cue note does not exist, creating %s", cue_path)
            cue_path = await self.store.create_document(cue_path, initial_cue_content(source_link))

        summary_path = expected_derived_path(source_path, ROLE_SUMMARY, self.settings)
        if not self.store.is_document(summary_path):
            logger.info("Summary note does not exist, creating %s", summary_path)
            _, cue_basename = split_doc_id(cue_path)
            cue_link = render_link(self.settings.link_to_cue_template, CUE_PLACEHOLDER, cue_basename)
            summary_path = await self.store.create_document(summary_path, initial_summary_content(source_link, cue_link))

        self._update_relationship(source_path, cue_path=cue_path, summary_path=summary_path)
        return cue_path, summary_path

    async def find_source_reference(self, cue_id: str, ref: str) -> ReferenceLocation | None:
        """Locate the first citation of ``ref`` in the Source behind ``cue_id``."""
        source_path = resolve_source_from_derived(cue_id, self.store, self.relationships, self.settings, self.state)
        source_text = await self.store.read_document(source_path)
        reference = find_first_reference(source_text, ref)
        if reference is None:
            logger.info("Reference [^%s] not found in %s", ref, source_path)
            return None
        line, col = line_col_for_offset(source_text, reference.span.start)
        return ReferenceLocation(source_path=source_path, ref=ref, span=reference.span, line=line, col=col)
