from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path

from .config import Settings, apply_env_overrides, settings_from_dict
from .errors import StateError
from .relationships import RelationshipTable

logger = logging.getLogger(__name__)

STATE_DIRNAME = ".cuesync"
STATE_FILENAME = "state.json"


def default_state_path(vault_root: Path) -> Path:
    return Path(vault_root) / STATE_DIRNAME / STATE_FILENAME


class StateStore:
    """Settings and the relationship table, persisted as one JSON file.

    Loaded once at startup with :meth:`load`; :meth:`save` is called after
    every operation that mutates either part.
    """

    def __init__(
        self,
        path: Path,
        settings: Settings | None = None,
        relationships: RelationshipTable | None = None,
        persisted_settings: Settings | None = None,
    ):
        self.path = Path(path)
        self.settings = settings or Settings()
        self.relationships = relationships or RelationshipTable()
        # Environment overrides apply to ``settings`` only and are never written back.
        self.persisted_settings = persisted_settings or replace(self.settings)

    @classmethod
    def load(cls, path: Path, environ=None) -> "StateStore":
        path = Path(path)
        raw = {}
        if path.exists():
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise StateError(f"Cannot read state file {path}: {exc}", details={"path": str(path)}) from exc
            if not isinstance(raw, dict):
                raise StateError(f"State file {path} does not hold an object", details={"path": str(path)})
        else:
            logger.info("No state file at %s, starting with defaults", path)

        persisted = settings_from_dict(raw.get("settings"))
        settings = apply_env_overrides(replace(persisted), environ)
        relationships = RelationshipTable.from_dict(raw.get("relationships"))
        logger.debug("Loaded %d relationship entries from %s", len(relationships), path)
        return cls(path, settings=settings, relationships=relationships, persisted_settings=persisted)

    def to_dict(self) -> dict:
        return {"settings": self.persisted_settings.to_dict(), "relationships": self.relationships.to_dict()}

    def save(self) -> None:
        payload = json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            raise StateError(f"Cannot write state file {self.path}: {exc}", details={"path": str(self.path)}) from exc
        logger.debug("Saved state to %s", self.path)
