"""
cuesync

Keeps footnote definitions consistent between a Source note and its Cue note.
"""

from cuesync.annotations import (
    Definition,
    ParsedAnnotations,
    Reference,
    Span,
    natural_sort_key,
    parse_annotations,
    parse_definitions_only,
)
from cuesync.config import Settings
from cuesync.coordinator import SyncCoordinator, SyncOutcome
from cuesync.generator import rebuild_source_document, render_derived_document
from cuesync.reconcile import reconcile_backward, reconcile_forward
from cuesync.relationships import DocumentRelationship, RelationshipTable
from cuesync.roles import expected_derived_path, resolve_source_from_derived
from cuesync.state import StateStore
from cuesync.storage import DocumentStore, FileSystemStore

from cuesync import errors

__all__ = [
    # Parser
    "Definition",
    "ParsedAnnotations",
    "Reference",
    "Span",
    "natural_sort_key",
    "parse_annotations",
    "parse_definitions_only",
    # Engine and generator
    "reconcile_backward",
    "reconcile_forward",
    "rebuild_source_document",
    "render_derived_document",
    # Roles and relationships
    "DocumentRelationship",
    "RelationshipTable",
    "expected_derived_path",
    "resolve_source_from_derived",
    # Coordination and storage
    "Settings",
    "StateStore",
    "SyncCoordinator",
    "SyncOutcome",
    "DocumentStore",
    "FileSystemStore",
    # Exceptions module (access as cuesync.errors.WriteConflict, etc.)
    "errors",
]
