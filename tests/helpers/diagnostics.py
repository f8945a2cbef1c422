from __future__ import annotations

import difflib
import json
from dataclasses import asdict, is_dataclass
from pathlib import Path


def _to_jsonable(value):
    if hasattr(value, "to_dict") and callable(value.to_dict):
        return value.to_dict()
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


def text_diff(expected: str, actual: str, label: str, max_lines: int = 60) -> str:
    expected_lines = (expected or "").splitlines()
    actual_lines = (actual or "").splitlines()
    lines = list(
        difflib.unified_diff(
            expected_lines,
            actual_lines,
            fromfile=f"{label}:expected",
            tofile=f"{label}:actual",
            lineterm="",
        )
    )
    if len(lines) > max_lines:
        lines = lines[:max_lines] + ["... diff truncated ..."]
    return "\n".join(lines)


def describe(value) -> str:
    return json.dumps(_to_jsonable(value), indent=2, ensure_ascii=False)


def write_failure_bundle(bundle_dir: Path, *, documents: dict[str, str], outcomes: list, errors: list[str]) -> Path:
    """Dump vault documents and pass outcomes for a failed sync scenario."""
    bundle_dir = Path(bundle_dir)
    bundle_dir.mkdir(parents=True, exist_ok=True)
    for doc_id, text in documents.items():
        target = bundle_dir / "documents" / doc_id
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
    (bundle_dir / "outcomes.json").write_text(describe(outcomes) + "\n", encoding="utf-8")

    report_lines = ["Sync scenario verification failed.", "", "Errors:"]
    for idx, error in enumerate(errors, start=1):
        report_lines.append(f"{idx}. {error}")
    (bundle_dir / "mismatch_report.txt").write_text("\n".join(report_lines) + "\n", encoding="utf-8")
    return bundle_dir
