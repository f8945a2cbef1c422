"""Settings for cuesync.

Settings are persisted in the ``settings`` section of the state file and
can be overridden per process from the environment.

Resolution order:
1. Environment variables (highest priority)
2. Persisted state file
3. Built-in defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping

logger = logging.getLogger(__name__)

SYNC_DEBOUNCE_SECONDS = 1.5
FLAG_RELEASE_DELAY = 0.1
DOCUMENT_EXTENSION = ".md"

# camelCase keys from Obsidian plugin data files, mapped to their current names.
LEGACY_KEYS = {
    "syncOnSave": "auto_sync_on_change",
    "deleteReferencesOnDefinitionDelete": "delete_orphaned_references_on_backward_sync",
    "deleteDefinitionsOnReferenceDelete": "prune_unreferenced_definitions_on_forward_sync",
    "moveFootnotesToEnd": "append_definitions_at_end",
    "linkToSourceText": "link_to_source_template",
    "linkToCueText": "link_to_cue_template",
}
OBSOLETE_KEYS = {
    "showReferencesInCue",
    "autoArrangeOnFootnoteCreate",
    "someOtherOldSetting",
    "enableCueNoteNavigation",
    "enableModifierClickHighlight",
}

ENV_OVERRIDES = {
    "CUESYNC_AUTO_SYNC": "auto_sync_on_change",
    "CUESYNC_DELETE_ORPHANED_REFERENCES": "delete_orphaned_references_on_backward_sync",
    "CUESYNC_PRUNE_UNREFERENCED": "prune_unreferenced_definitions_on_forward_sync",
    "CUESYNC_APPEND_AT_END": "append_definitions_at_end",
    "CUESYNC_DEBOUNCE_SECONDS": "debounce_seconds",
}

_TRUE_TOKENS = {"1", "true", "yes", "on"}
_FALSE_TOKENS = {"0", "false", "no", "off"}


@dataclass
class Settings:
    auto_sync_on_change: bool = False
    delete_orphaned_references_on_backward_sync: bool = False
    prune_unreferenced_definitions_on_forward_sync: bool = False
    append_definitions_at_end: bool = True
    link_to_source_template: str = "[[{{sourceNote}}|⬅️ Back to Source]]"
    link_to_cue_template: str = "[[{{cueNote}}|⬅️ Back to Cue]]"
    cue_suffix: str = "-cue"
    summary_suffix: str = "-summary"
    debounce_seconds: float = SYNC_DEBOUNCE_SECONDS

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _accepts(default: Any, value: Any) -> bool:
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0
    return isinstance(value, type(default))


def settings_from_dict(raw: Mapping[str, Any] | None) -> Settings:
    """Merge persisted values over the defaults.

    Legacy plugin keys are migrated, obsolete ones dropped, and values of the
    wrong type fall back to the default with a warning.
    """
    settings = Settings()
    if not raw:
        return settings
    if not isinstance(raw, Mapping):
        logger.warning("Ignoring persisted settings of type %s", type(raw).__name__)
        return settings

    values = {}
    for key, value in raw.items():
        if key in OBSOLETE_KEYS:
            logger.debug("Dropping obsolete setting %s", key)
            continue
        name = LEGACY_KEYS.get(key, key)
        if name != key and name in raw:
            # Current key wins over its legacy alias.
            continue
        values[name] = value

    known = {f.name for f in fields(Settings)}
    for name, value in values.items():
        if name not in known:
            logger.warning("Ignoring unknown setting %s", name)
            continue
        default = getattr(settings, name)
        if not _accepts(default, value):
            logger.warning("Setting %s has invalid value %r; using default %r", name, value, default)
            continue
        if isinstance(default, float):
            value = float(value)
        setattr(settings, name, value)
    return settings


def _parse_bool(token: str):
    lowered = token.strip().lower()
    if lowered in _TRUE_TOKENS:
        return True
    if lowered in _FALSE_TOKENS:
        return False
    return None


def apply_env_overrides(settings: Settings, environ: Mapping[str, str] | None = None) -> Settings:
    environ = os.environ if environ is None else environ
    for env_name, attr in ENV_OVERRIDES.items():
        if env_name not in environ:
            continue
        raw = environ[env_name]
        if isinstance(getattr(settings, attr), bool):
            value = _parse_bool(raw)
        else:
            try:
                value = float(raw)
            except ValueError:
                value = None
        if value is None:
            logger.warning("Ignoring %s=%r: not a valid value", env_name, raw)
            continue
        setattr(settings, attr, value)
    return settings
