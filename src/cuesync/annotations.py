from __future__ import annotations

import re
from dataclasses import dataclass

DEF_HEAD_RE = re.compile(r"^[ \t]*\[\^(?P<ref>[^\]\n]+)\]:[ \t]*(?P<rest>.*)$")
CONTINUATION_INDENT_RE = re.compile(r"^(?: {4}|\t|[ \t]{2,})")
REFERENCE_RE = re.compile(r"\[\^(?P<ref>[^\]\n]+)\](?!:)")
NATURAL_CHUNK_RE = re.compile(r"(\d+)")
CONTINUATION_INDENT = "    "


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class Definition:
    ref: str
    body: str
    span: Span
    raw_match: str

    def to_dict(self) -> dict:
        return {
            "ref": self.ref,
            "body": self.body,
            "span": self.span.to_dict(),
            "raw_match": self.raw_match,
        }


@dataclass(frozen=True)
class Reference:
    ref: str
    span: Span
    raw_match: str

    def to_dict(self) -> dict:
        return {"ref": self.ref, "span": self.span.to_dict(), "raw_match": self.raw_match}


@dataclass(frozen=True)
class ParsedAnnotations:
    definitions: list[Definition]
    references: list[Reference]

    def definition_map(self) -> dict[str, str]:
        # Later definitions of the same ref overwrite earlier ones.
        return {d.ref: d.body for d in self.definitions}

    def referenced_refs(self) -> set[str]:
        return {r.ref for r in self.references}

    def to_dict(self) -> dict:
        return {
            "definitions": [d.to_dict() for d in self.definitions],
            "references": [r.to_dict() for r in self.references],
        }


def _split_lines_with_offsets(text: str):
    lines = []
    offset = 0
    for raw in text.split("\n"):
        lines.append((offset, raw))
        offset += len(raw) + 1
    return lines


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_continuation(line: str) -> bool:
    if _is_blank(line) or DEF_HEAD_RE.match(line):
        return False
    return CONTINUATION_INDENT_RE.match(line) is not None


def _dedent_continuation(line: str) -> str:
    match = CONTINUATION_INDENT_RE.match(line)
    if match is None:
        return line
    return line[match.end():]


def scan_definitions(text: str) -> list[Definition]:
    """Scan ``text`` line by line for footnote definitions.

    A definition starts on a line of the form ``[^ref]: body`` (leading
    spaces or tabs allowed). Following lines indented by four spaces, a tab
    or two or more spaces continue the body; blank lines are kept only when
    another continuation line follows them.
    """
    text = text or ""
    lines = _split_lines_with_offsets(text)
    definitions = []
    i = 0
    while i < len(lines):
        start, line = lines[i]
        head = DEF_HEAD_RE.match(line)
        if head is None:
            i += 1
            continue

        body_lines = [head.group("rest").rstrip("\r")]
        end = start + len(line)
        pending_blanks = []
        j = i + 1
        while j < len(lines):
            next_start, next_line = lines[j]
            if _is_blank(next_line):
                pending_blanks.append("")
                j += 1
                continue
            if not _is_continuation(next_line):
                break
            body_lines.extend(pending_blanks)
            pending_blanks = []
            body_lines.append(_dedent_continuation(next_line).rstrip("\r"))
            end = next_start + len(next_line)
            j += 1

        ref = head.group("ref").strip()
        if ref:
            definitions.append(
                Definition(
                    ref=ref,
                    body="\n".join(body_lines).strip(),
                    span=Span(start, end),
                    raw_match=text[start:end],
                )
            )
        # Resume right after the last absorbed line so trailing blanks are rescanned.
        consumed = j - len(pending_blanks)
        i = max(consumed, i + 1)
    return definitions


def scan_references(text: str) -> list[Reference]:
    references = []
    for match in REFERENCE_RE.finditer(text or ""):
        ref = match.group("ref").strip()
        if not ref:
            continue
        references.append(Reference(ref=ref, span=Span(match.start(), match.end()), raw_match=match.group(0)))
    return references


def parse_annotations(text: str) -> ParsedAnnotations:
    return ParsedAnnotations(definitions=scan_definitions(text), references=scan_references(text))


def parse_definitions_only(text: str) -> dict[str, str]:
    return {d.ref: d.body for d in scan_definitions(text)}


def natural_sort_key(ref: str):
    """Numeric-aware, case-insensitive ordering key ("2" sorts before "10")."""
    chunks = []
    for chunk in NATURAL_CHUNK_RE.split(str(ref or "").casefold()):
        if not chunk:
            continue
        if chunk.isdecimal():
            chunks.append((0, int(chunk), ""))
        else:
            chunks.append((1, 0, chunk))
    return tuple(chunks), str(ref or "")


def sorted_refs(refs) -> list[str]:
    return sorted(refs, key=natural_sort_key)


def format_definition(ref: str, body: str) -> str:
    lines = (body or "").split("\n")
    rendered = [f"[^{ref}]: {lines[0]}".rstrip()]
    for line in lines[1:]:
        rendered.append(CONTINUATION_INDENT + line if line.strip() else "")
    return "\n".join(rendered)


def render_definitions(annotation_set: dict[str, str]) -> str:
    if not annotation_set:
        return ""
    return "\n\n".join(format_definition(ref, annotation_set[ref]) for ref in sorted_refs(annotation_set))


def strip_references(text: str, refs) -> str:
    targets = set(refs or ())
    if not targets:
        return text

    def _replace(match: re.Match):
        if match.group("ref").strip() in targets:
            return ""
        return match.group(0)

    return REFERENCE_RE.sub(_replace, text or "")


def find_first_reference(text: str, ref: str) -> Reference | None:
    for reference in scan_references(text):
        if reference.ref == ref:
            return reference
    return None


def line_col_for_offset(text: str, offset: int):
    safe_offset = max(0, min(len(text or ""), int(offset)))
    line = (text or "").count("\n", 0, safe_offset) + 1
    last_newline = (text or "").rfind("\n", 0, safe_offset)
    col = safe_offset - (last_newline + 1) + 1
    return line, col
