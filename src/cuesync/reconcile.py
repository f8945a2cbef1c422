"""Directional reconciliation between a Source document and its Cue.

Both directions are pure: they take the current text of the side being
rewritten plus the counterpart's AnnotationSet and return the new state.
Nothing here touches storage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .annotations import parse_annotations, sorted_refs, strip_references
from .generator import rebuild_source_document

logger = logging.getLogger(__name__)


@dataclass
class ForwardResult:
    annotations: dict[str, str]
    changed: bool
    dropped: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)


@dataclass
class BackwardResult:
    annotations: dict[str, str]
    text: str
    changed: bool
    removed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)


def _same_annotations(left: dict[str, str], right: dict[str, str]) -> bool:
    if set(left) != set(right):
        return False
    return all(left[ref].strip() == right[ref].strip() for ref in left)


def reconcile_forward(source_text: str, derived_set: dict[str, str], prune_unreferenced: bool = False) -> ForwardResult:
    """Compute the Cue's next AnnotationSet from the Source.

    The Source is authoritative: the result holds exactly its definitions.
    Refs only present on the derived side are dropped. With
    ``prune_unreferenced`` a definition whose ref is no longer cited anywhere
    in the Source is removed as well.
    """
    parsed = parse_annotations(source_text)
    annotations = parsed.definition_map()
    derived_set = dict(derived_set or {})
    dropped = sorted_refs(ref for ref in derived_set if ref not in annotations)

    pruned = []
    if prune_unreferenced:
        cited = parsed.referenced_refs()
        for ref in sorted_refs(annotations):
            if ref not in cited:
                logger.debug("Pruning [^%s]: no references left in source", ref)
                del annotations[ref]
                pruned.append(ref)

    return ForwardResult(
        annotations=annotations,
        changed=not _same_annotations(annotations, derived_set),
        dropped=dropped,
        pruned=pruned,
    )


def reconcile_backward(
    source_text: str,
    derived_set: dict[str, str],
    delete_orphaned_references: bool = False,
    append_at_end: bool = True,
) -> BackwardResult:
    """Compute the Source's next text from the Cue's AnnotationSet.

    Every existing definition block is cut out of the Source, references to
    removed refs are optionally stripped, and a fresh definition block is
    appended. Citations of retained refs are never touched.
    """
    source_text = source_text or ""
    derived_set = dict(derived_set or {})
    source_defs = parse_annotations(source_text).definitions
    source_refs = {d.ref for d in source_defs}

    annotations = {}
    removed = []
    for definition in source_defs:
        if definition.ref in derived_set:
            annotations[definition.ref] = derived_set[definition.ref]
        elif definition.ref not in removed:
            logger.debug("Marking [^%s] for removal: not defined in cue", definition.ref)
            removed.append(definition.ref)
    added = []
    for ref, body in derived_set.items():
        if ref not in source_refs:
            logger.debug("Adding [^%s] from cue", ref)
            annotations[ref] = body
            added.append(ref)

    body = source_text
    for definition in sorted(source_defs, key=lambda d: d.span.start, reverse=True):
        body = body[: definition.span.start] + body[definition.span.end :]
    body = body.rstrip()

    if delete_orphaned_references and removed:
        logger.info("Removing references for deleted definitions: %s", ", ".join(sorted_refs(removed)))
        body = strip_references(body, removed)

    if not append_at_end:
        # In-place reinsertion has no defined semantics; definitions still go last.
        logger.warning("append_definitions_at_end is disabled; definitions are still appended at the end")
    text = rebuild_source_document(body, annotations)

    return BackwardResult(
        annotations=annotations,
        text=text,
        changed=text != source_text,
        removed=sorted_refs(removed),
        added=sorted_refs(added),
    )
