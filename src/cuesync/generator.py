"""Deterministic rendering of Cue, Summary and rebuilt Source documents."""

from __future__ import annotations

import re

from .annotations import render_definitions, sorted_refs

MARKER_BLOCK_ID = "cornell-footnote-links"
SOURCE_PLACEHOLDER = "{{sourceNote}}"
CUE_PLACEHOLDER = "{{cueNote}}"
SUMMARY_HEADING = "# Summary"

FIRST_DEF_LINE_RE = re.compile(r"^[ \t]*\[\^[^\]\n]+\]:", re.MULTILINE)
MARKER_FENCE_RE = re.compile(r"^[ \t]*```" + re.escape(MARKER_BLOCK_ID), re.MULTILINE)
EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def render_marker_block() -> str:
    return f"```{MARKER_BLOCK_ID}\n```"


def render_link(template: str, placeholder: str, value: str) -> str:
    return (template or "").replace(placeholder, value)


def normalize_document_tail(text: str) -> str:
    """Single trailing newline, and no run of more than one blank line."""
    return EXCESS_NEWLINES_RE.sub("\n\n", (text or "").rstrip() + "\n")


def header_end_offset(text: str) -> int:
    """Offset of the first definition line or marker fence, else ``len(text)``."""
    text = text or ""
    candidates = [len(text)]
    first_def = FIRST_DEF_LINE_RE.search(text)
    if first_def is not None:
        candidates.append(first_def.start())
    first_marker = MARKER_FENCE_RE.search(text)
    if first_marker is not None:
        candidates.append(first_marker.start())
    return min(candidates)


def extract_header(text: str) -> str:
    return (text or "")[: header_end_offset(text)].rstrip()


def render_derived_document(current_text: str, header_link: str, annotation_set: dict[str, str]) -> str:
    """Render a Cue document from its current text and an AnnotationSet.

    Free-form content before the first definition (or marker block) is kept
    as the header; ``header_link`` is prepended when the header does not
    already contain it. Everything from the first definition onward is
    regenerated: sorted definitions followed by the marker block, the latter
    only when there is at least one definition.
    """
    header = extract_header(current_text)
    if header_link and header_link not in header:
        header = f"{header_link}\n\n{header}" if header else header_link

    parts = []
    if header:
        parts.append(header)
    definitions_text = render_definitions(annotation_set)
    if definitions_text:
        parts.append(definitions_text)
        parts.append(render_marker_block())
    return normalize_document_tail("\n\n".join(parts))


def rebuild_source_document(body: str, annotation_set: dict[str, str]) -> str:
    """Append a freshly rendered definition block to a Source body."""
    new_text = (body or "").rstrip()
    definitions_text = render_definitions(annotation_set)
    if definitions_text:
        new_text = f"{new_text}\n\n{definitions_text}" if new_text else definitions_text
    return normalize_document_tail(new_text)


def initial_cue_content(source_link: str) -> str:
    return f"{source_link}\n\n"


def initial_summary_content(source_link: str, cue_link: str) -> str:
    return f"{source_link}\n{cue_link}\n\n{SUMMARY_HEADING}\n\n"


def marker_link_entries(annotation_set: dict[str, str]) -> list[tuple[str, str]]:
    return [(ref, annotation_set[ref]) for ref in sorted_refs(annotation_set)]
