from __future__ import annotations

import logging
import posixpath
import re
from typing import TYPE_CHECKING

from .config import DOCUMENT_EXTENSION, Settings
from .errors import AmbiguousResolution, SourceNotFound

if TYPE_CHECKING:
    from .relationships import RelationshipTable
    from .state import StateStore
    from .storage import DocumentStore

logger = logging.getLogger(__name__)

ROLE_SOURCE = "source"
ROLE_CUE = "cue"
ROLE_SUMMARY = "summary"
DERIVED_ROLES = (ROLE_CUE, ROLE_SUMMARY)

SLASH_RUN_RE = re.compile(r"/+")


def normalize_path(doc_id: str) -> str:
    path = str(doc_id or "").replace("\\", "/")
    path = SLASH_RUN_RE.sub("/", path).strip("/")
    return path


def split_doc_id(doc_id: str):
    """Return ``(folder, basename)``; folder is ``""`` at the vault root."""
    path = normalize_path(doc_id)
    folder, filename = posixpath.split(path)
    basename = filename[: -len(DOCUMENT_EXTENSION)] if filename.endswith(DOCUMENT_EXTENSION) else filename
    return folder, basename


def join_doc_id(folder: str, filename: str) -> str:
    return normalize_path(f"{folder}/{filename}" if folder else filename)


def _suffix_for(kind: str, settings: Settings) -> str:
    if kind == ROLE_CUE:
        return settings.cue_suffix
    if kind == ROLE_SUMMARY:
        return settings.summary_suffix
    raise ValueError(f"Unknown derived kind: {kind}")


def detect_role(doc_id: str, settings: Settings | None = None):
    settings = settings or Settings()
    path = normalize_path(doc_id)
    if not path.endswith(DOCUMENT_EXTENSION):
        return None
    for kind in DERIVED_ROLES:
        if path.endswith(_suffix_for(kind, settings) + DOCUMENT_EXTENSION):
            return kind
    return ROLE_SOURCE


def is_cue(doc_id: str, settings: Settings | None = None) -> bool:
    return detect_role(doc_id, settings) == ROLE_CUE


def is_summary(doc_id: str, settings: Settings | None = None) -> bool:
    return detect_role(doc_id, settings) == ROLE_SUMMARY


def is_source(doc_id: str, settings: Settings | None = None) -> bool:
    return detect_role(doc_id, settings) == ROLE_SOURCE


def expected_derived_path(source_id: str, kind: str, settings: Settings | None = None) -> str:
    settings = settings or Settings()
    folder, basename = split_doc_id(source_id)
    return join_doc_id(folder, f"{basename}{_suffix_for(kind, settings)}{DOCUMENT_EXTENSION}")


def source_basename_from_derived(derived_id: str, settings: Settings | None = None):
    settings = settings or Settings()
    role = detect_role(derived_id, settings)
    if role not in DERIVED_ROLES:
        return None
    _, basename = split_doc_id(derived_id)
    suffix = _suffix_for(role, settings)
    source_basename = basename[: -len(suffix)]
    return source_basename or None


def candidate_source_paths(derived_id: str, settings: Settings | None = None) -> list[str]:
    """Same folder, parent folder and vault root, in that order, de-duplicated."""
    source_basename = source_basename_from_derived(derived_id, settings)
    if not source_basename:
        return []
    filename = source_basename + DOCUMENT_EXTENSION
    folder, _ = split_doc_id(derived_id)
    candidates = [join_doc_id(folder, filename)]
    if folder:
        candidates.append(join_doc_id(posixpath.dirname(folder), filename))
        candidates.append(join_doc_id("", filename))
    unique = []
    for path in candidates:
        if path not in unique:
            unique.append(path)
    return unique


def resolve_source_from_derived(
    derived_id: str,
    store: "DocumentStore",
    table: "RelationshipTable",
    settings: Settings | None = None,
    state: "StateStore | None" = None,
) -> str:
    """Find the Source document a Cue or Summary belongs to.

    The relationship table is consulted first; on a miss the Source is
    guessed from the derived file name and the table is backfilled. Raises
    :class:`SourceNotFound` when nothing matches.
    """
    settings = settings or Settings()
    derived_path = normalize_path(derived_id)
    role = detect_role(derived_path, settings)
    if role not in DERIVED_ROLES:
        raise AmbiguousResolution(f"Not a derived document: {derived_path}", details={"role": role})

    entry = table.find_by_derived(derived_path)
    if entry is not None and store.is_document(entry.source_path):
        return entry.source_path

    source_basename = source_basename_from_derived(derived_path, settings)
    tried = candidate_source_paths(derived_path, settings)
    for path in tried:
        _, basename = split_doc_id(path)
        if basename == source_basename and store.is_document(path):
            logger.info("Guessed source for %s -> %s", derived_path, path)
            field_name = "cue_path" if role == ROLE_CUE else "summary_path"
            if table.update(path, **{field_name: derived_path}) and state is not None:
                state.save()
            return path

    logger.warning("Source not found for %s (tried: %s)", derived_path, ", ".join(tried) or "-")
    raise SourceNotFound(f"Source not found for {derived_path}", path=derived_path, tried=tried)
