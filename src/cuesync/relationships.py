"""Source -> derived document relationships.

The table is owned by a single :class:`RelationshipTable`; every mutation
goes through :meth:`RelationshipTable.update` or :meth:`RelationshipTable.remove`
so callers can tell whether the table needs persisting.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import TYPE_CHECKING, Any, Iterator, Optional

from .roles import ROLE_CUE, ROLE_SOURCE, ROLE_SUMMARY, detect_role, expected_derived_path, normalize_path

if TYPE_CHECKING:
    from .config import Settings
    from .storage import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class DocumentRelationship:
    source_path: str
    cue_path: Optional[str] = None
    summary_path: Optional[str] = None
    last_sync_forward: Optional[int] = None
    last_sync_backward: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DocumentRelationship":
        return cls(**{f.name: data.get(f.name) for f in fields(cls)})


def _optional(value: Any, kind) -> bool:
    return value is None or (isinstance(value, kind) and not isinstance(value, bool))


def is_valid_relationship(key: Any, value: Any) -> bool:
    return (
        isinstance(key, str)
        and isinstance(value, dict)
        and isinstance(value.get("source_path"), str)
        and _optional(value.get("cue_path"), str)
        and _optional(value.get("summary_path"), str)
        and _optional(value.get("last_sync_forward"), (int, float))
        and _optional(value.get("last_sync_backward"), (int, float))
    )


class RelationshipTable:
    def __init__(self, entries: dict[str, DocumentRelationship] | None = None):
        self._entries: dict[str, DocumentRelationship] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, source_path: str) -> bool:
        return normalize_path(source_path) in self._entries

    def items(self) -> Iterator[tuple[str, DocumentRelationship]]:
        return iter(list(self._entries.items()))

    def get(self, source_path: str) -> DocumentRelationship | None:
        return self._entries.get(normalize_path(source_path))

    def get_or_create(self, source_path: str) -> DocumentRelationship:
        key = normalize_path(source_path)
        entry = self._entries.get(key)
        if entry is None:
            entry = DocumentRelationship(source_path=key)
            self._entries[key] = entry
            logger.debug("Created relationship entry for %s", key)
        return entry

    def update(self, source_path: str, /, **changes: Any) -> bool:
        """Apply ``changes`` to the entry for ``source_path``, creating it if needed.

        Returns True when the table changed.
        """
        key = normalize_path(source_path)
        created = key not in self._entries
        entry = self.get_or_create(key)
        changed = created
        for name, value in changes.items():
            if not hasattr(entry, name) or name == "source_path":
                raise AttributeError(f"DocumentRelationship has no mutable field {name!r}")
            if getattr(entry, name) != value:
                setattr(entry, name, value)
                changed = True
        return changed

    def remove(self, source_path: str) -> bool:
        return self._entries.pop(normalize_path(source_path), None) is not None

    def find_by_derived(self, derived_path: str) -> DocumentRelationship | None:
        target = normalize_path(derived_path)
        for entry in self._entries.values():
            if entry.cue_path == target or entry.summary_path == target:
                return entry
        return None

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {key: entry.to_dict() for key, entry in self._entries.items()}

    @classmethod
    def from_dict(cls, data: Any) -> "RelationshipTable":
        entries = {}
        if not isinstance(data, dict):
            if data is not None:
                logger.warning("Ignoring relationship data of type %s", type(data).__name__)
            return cls()
        for key, value in data.items():
            if not is_valid_relationship(key, value):
                logger.warning("Invalid relationship entry for %r skipped: %r", key, value)
                continue
            entries[normalize_path(key)] = DocumentRelationship.from_dict(value)
        return cls(entries)


@dataclass
class RescanReport:
    added: int = 0
    updated: int = 0
    removed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)


def rescan(table: RelationshipTable, store: "DocumentStore", settings: "Settings") -> RescanReport:
    """Bring the table in line with the documents that actually exist."""
    report = RescanReport()
    documents = set(store.list_all_documents())
    seen = set()
    for doc_id in sorted(documents):
        if detect_role(doc_id, settings) != ROLE_SOURCE:
            continue
        seen.add(doc_id)
        cue_path = expected_derived_path(doc_id, ROLE_CUE, settings)
        summary_path = expected_derived_path(doc_id, ROLE_SUMMARY, settings)
        existed = doc_id in table
        changed = table.update(
            doc_id,
            cue_path=cue_path if cue_path in documents else None,
            summary_path=summary_path if summary_path in documents else None,
        )
        if not existed:
            report.added += 1
        elif changed:
            report.updated += 1

    for key, _ in table.items():
        if key not in seen and table.remove(key):
            report.removed += 1

    logger.info(
        "Relationship rescan: added %d, updated %d, removed %d (total %d)",
        report.added,
        report.updated,
        report.removed,
        len(table),
    )
    return report
