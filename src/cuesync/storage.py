"""Document storage collaborators.

Document ids are vault-relative POSIX paths. Reads and writes are
coroutines so a pass awaits them like any other external call.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from .config import DOCUMENT_EXTENSION
from .errors import DocumentNotFound, WriteConflict
from .roles import normalize_path

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Interface of the host's document storage."""

    @abstractmethod
    async def read_document(self, doc_id: str) -> str:
        ...

    @abstractmethod
    async def write_document(self, doc_id: str, text: str) -> None:
        ...

    @abstractmethod
    async def create_document(self, doc_id: str, text: str) -> str:
        ...

    @abstractmethod
    def list_all_documents(self) -> list[str]:
        ...

    @abstractmethod
    def exists(self, doc_id: str) -> bool:
        ...

    @abstractmethod
    def is_document(self, doc_id: str) -> bool:
        ...


class FileSystemStore(DocumentStore):
    """UTF-8 markdown files under a vault directory."""

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def path_for(self, doc_id: str) -> Path:
        rel = normalize_path(doc_id)
        if not rel:
            raise DocumentNotFound("Empty document id", path=rel)
        path = (self.root / rel).resolve()
        if path != self.root and self.root not in path.parents:
            raise DocumentNotFound(f"Document id escapes the vault: {doc_id}", path=rel)
        return path

    def doc_id_for(self, path: Path) -> str | None:
        try:
            rel = Path(path).resolve().relative_to(self.root)
        except ValueError:
            return None
        return normalize_path(rel.as_posix())

    def exists(self, doc_id: str) -> bool:
        try:
            return self.path_for(doc_id).exists()
        except DocumentNotFound:
            return False

    def is_document(self, doc_id: str) -> bool:
        try:
            path = self.path_for(doc_id)
        except DocumentNotFound:
            return False
        return path.is_file() and path.name.endswith(DOCUMENT_EXTENSION)

    async def read_document(self, doc_id: str) -> str:
        path = self.path_for(doc_id)
        if not path.is_file():
            raise DocumentNotFound(f"Document not found: {normalize_path(doc_id)}", path=normalize_path(doc_id))
        return path.read_text(encoding="utf-8")

    async def write_document(self, doc_id: str, text: str) -> None:
        path = self.path_for(doc_id)
        if path.exists() and not path.is_file():
            raise WriteConflict(f"Path exists but is not a file: {normalize_path(doc_id)}", path=normalize_path(doc_id))
        if not path.exists():
            raise DocumentNotFound(f"Document not found: {normalize_path(doc_id)}", path=normalize_path(doc_id))
        path.write_text(text, encoding="utf-8")
        logger.debug("Wrote %s (%d chars)", normalize_path(doc_id), len(text))

    async def create_document(self, doc_id: str, text: str) -> str:
        rel = normalize_path(doc_id)
        path = self.path_for(rel)
        if path.exists():
            if path.is_file():
                return rel
            raise WriteConflict(f"Path exists but is not a file: {rel}", path=rel)
        for parent in reversed(path.parents):
            if parent.exists() and not parent.is_dir():
                raise WriteConflict(f"Path exists but is not a folder: {self.doc_id_for(parent)}", path=rel)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info("Created %s", rel)
        return rel

    def list_all_documents(self) -> list[str]:
        documents = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in filenames:
                if not filename.endswith(DOCUMENT_EXTENSION):
                    continue
                doc_id = self.doc_id_for(Path(dirpath) / filename)
                if doc_id:
                    documents.append(doc_id)
        return sorted(documents)
