from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from cuesync.config import Settings, apply_env_overrides, settings_from_dict
from cuesync.errors import StateError
from cuesync.state import StateStore, default_state_path


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = settings_from_dict(None)
        self.assertEqual(settings, Settings())
        self.assertFalse(settings.auto_sync_on_change)
        self.assertTrue(settings.append_definitions_at_end)
        self.assertEqual(settings.debounce_seconds, 1.5)

    def test_legacy_keys_are_migrated(self) -> None:
        raw = {
            "syncOnSave": True,
            "moveFootnotesToEnd": False,
            "deleteReferencesOnDefinitionDelete": True,
            "linkToSourceText": "[[{{sourceNote}}]]",
            "showReferencesInCue": True,
        }
        settings = settings_from_dict(raw)
        self.assertTrue(settings.auto_sync_on_change)
        self.assertFalse(settings.append_definitions_at_end)
        self.assertTrue(settings.delete_orphaned_references_on_backward_sync)
        self.assertEqual(settings.link_to_source_template, "[[{{sourceNote}}]]")

    def test_current_key_wins_over_legacy_alias(self) -> None:
        settings = settings_from_dict({"syncOnSave": True, "auto_sync_on_change": False})
        self.assertFalse(settings.auto_sync_on_change)

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        raw = {"debounce_seconds": "fast", "cue_suffix": 3, "auto_sync_on_change": "yes", "mystery": 1}
        with self.assertLogs("cuesync.config", level="WARNING") as logs:
            settings = settings_from_dict(raw)
        self.assertEqual(settings, Settings())
        self.assertEqual(len(logs.records), 4)

    def test_integer_debounce_is_accepted(self) -> None:
        settings = settings_from_dict({"debounce_seconds": 2})
        self.assertEqual(settings.debounce_seconds, 2.0)
        self.assertIsInstance(settings.debounce_seconds, float)

    def test_env_overrides(self) -> None:
        environ = {
            "CUESYNC_AUTO_SYNC": "yes",
            "CUESYNC_DEBOUNCE_SECONDS": "0.25",
            "CUESYNC_PRUNE_UNREFERENCED": "1",
        }
        settings = apply_env_overrides(Settings(), environ)
        self.assertTrue(settings.auto_sync_on_change)
        self.assertTrue(settings.prune_unreferenced_definitions_on_forward_sync)
        self.assertEqual(settings.debounce_seconds, 0.25)

    def test_invalid_env_values_are_ignored(self) -> None:
        with self.assertLogs("cuesync.config", level="WARNING"):
            settings = apply_env_overrides(
                Settings(), {"CUESYNC_APPEND_AT_END": "maybe", "CUESYNC_DEBOUNCE_SECONDS": "soon"}
            )
        self.assertTrue(settings.append_definitions_at_end)
        self.assertEqual(settings.debounce_seconds, 1.5)


class TestStateStore(unittest.TestCase):
    def setUp(self) -> None:
        self.root = Path(tempfile.mkdtemp(prefix="cuesync-state-"))
        self.path = default_state_path(self.root)

    def test_missing_file_gives_defaults(self) -> None:
        state = StateStore.load(self.path, environ={})
        self.assertEqual(state.settings, Settings())
        self.assertEqual(len(state.relationships), 0)
        self.assertFalse(self.path.exists())

    def test_save_and_load(self) -> None:
        state = StateStore.load(self.path, environ={})
        state.relationships.update("topic.md", cue_path="topic-cue.md", last_sync_forward=1700000000000)
        state.save()

        raw = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(set(raw), {"settings", "relationships"})
        self.assertEqual(raw["relationships"]["topic.md"]["cue_path"], "topic-cue.md")
        self.assertTrue(self.path.read_text(encoding="utf-8").endswith("}\n"))
        self.assertEqual([p.name for p in self.path.parent.iterdir()], ["state.json"])

        reloaded = StateStore.load(self.path, environ={})
        self.assertEqual(reloaded.relationships.get("topic.md").last_sync_forward, 1700000000000)

    def test_env_overrides_are_not_persisted(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"settings": {"syncOnSave": False}}), encoding="utf-8")

        state = StateStore.load(self.path, environ={"CUESYNC_AUTO_SYNC": "true"})
        self.assertTrue(state.settings.auto_sync_on_change)
        state.save()

        raw = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertFalse(raw["settings"]["auto_sync_on_change"])
        self.assertNotIn("syncOnSave", raw["settings"])

    def test_unreadable_state_raises(self) -> None:
        self.path.parent.mkdir(parents=True)
        for content in ("{not json", "[1, 2]"):
            with self.subTest(content=content):
                self.path.write_text(content, encoding="utf-8")
                with self.assertRaises(StateError):
                    StateStore.load(self.path, environ={})


if __name__ == "__main__":
    unittest.main()
