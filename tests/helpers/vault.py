from __future__ import annotations

import tempfile
from pathlib import Path


def make_vault(files: dict[str, str] | None = None, prefix: str = "cuesync-vault-") -> Path:
    root = Path(tempfile.mkdtemp(prefix=prefix))
    for rel, text in (files or {}).items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


def read_doc(root: Path, rel: str) -> str:
    return (Path(root) / rel).read_text(encoding="utf-8")


def snapshot(root: Path) -> dict[str, str]:
    root = Path(root)
    return {
        path.relative_to(root).as_posix(): path.read_text(encoding="utf-8")
        for path in sorted(root.rglob("*.md"))
    }
