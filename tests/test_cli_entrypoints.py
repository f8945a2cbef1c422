from __future__ import annotations

import io
import os
import subprocess
import sys
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from cuesync_cli.cli import main
from cuesync_cli.version import __version__
from tests.helpers.vault import make_vault, read_doc

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
LINK = "[[topic|⬅️ Back to Source]]"


class TestCliEntrypoints(unittest.TestCase):
    def run_main(self, argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def run_cmd(self, cmd, extra_env=None):
        env = os.environ.copy()
        if extra_env:
            env.update(extra_env)
        proc = subprocess.run(cmd, cwd=str(REPO_ROOT), capture_output=True, text=True, env=env)
        return proc.returncode, proc.stdout, proc.stderr

    def test_help_screens_exit_zero(self):
        for argv in ([], ["--help"], ["-h"], ["--vault", "."]):
            with self.subTest(argv=argv):
                code, stdout, _ = self.run_main(argv)
                self.assertEqual(code, 0)
                self.assertIn("USAGE:", stdout)

    def test_version(self):
        code, stdout, _ = self.run_main(["--version"])
        self.assertEqual(code, 0)
        self.assertEqual(stdout.strip(), f"cuesync {__version__}")

    def test_unknown_command(self):
        code, _, stderr = self.run_main(["teleport"])
        self.assertEqual(code, 2)
        self.assertIn("unknown command 'teleport'", stderr)

    def test_module_entrypoint(self):
        code, stdout, stderr = self.run_cmd(
            [sys.executable, "-m", "cuesync_cli", "--help"],
            extra_env={"PYTHONPATH": str(SRC_ROOT)},
        )
        self.assertEqual(code, 0, msg=f"stdout={stdout}\nstderr={stderr}")
        self.assertIn("cuesync", stdout)

    def test_arrange_forward_backward(self):
        root = make_vault({"topic.md": "Text[^a].\n\n[^a]: x\n"})

        code, stdout, stderr = self.run_main(["--vault", str(root), "-q", "arrange", "topic.md"])
        self.assertEqual(code, 0, msg=stderr)
        self.assertIn("Arranged topic.md", stdout)
        self.assertTrue((root / "topic-summary.md").exists())

        code, stdout, stderr = self.run_main(["--vault", str(root), "-q", "s2c", "topic.md"])
        self.assertEqual(code, 0, msg=stderr)
        self.assertIn("Cue updated for topic.", stdout)
        self.assertIn("[^a]: x", read_doc(root, "topic-cue.md"))

        (root / "topic-cue.md").write_text(f"{LINK}\n\n[^a]: changed\n", encoding="utf-8")
        code, stdout, stderr = self.run_main(["--vault", str(root), "-q", "backward", "topic-cue.md"])
        self.assertEqual(code, 0, msg=stderr)
        self.assertEqual(read_doc(root, "topic.md"), "Text[^a].\n\n[^a]: changed\n")
        self.assertTrue((root / ".cuesync" / "state.json").exists())

    def test_failures_map_to_exit_codes(self):
        root = make_vault({"orphan-cue.md": "[^a]: x\n", "b.md": "Body\n"})
        (root / "b-cue.md").mkdir()

        code, stdout, _ = self.run_main(["--vault", str(root), "-q", "c2s", "orphan-cue.md"])
        self.assertEqual(code, 2)
        self.assertIn("Source not found for orphan-cue.md", stdout)

        code, _, stderr = self.run_main(["--vault", str(root), "-q", "arrange", "b.md"])
        self.assertEqual(code, 2)
        self.assertIn("error: Path exists but is not a file: b-cue.md", stderr)

        code, _, stderr = self.run_main(["--vault", str(root), "-q", "arrange", "orphan-cue.md"])
        self.assertEqual(code, 1)
        self.assertIn("error: Cannot arrange", stderr)

    def test_locate_and_state_option(self):
        root = make_vault({"topic.md": "one\nsee [^x]\n\n[^x]: body\n", "topic-cue.md": ""})
        state_path = root / "custom-state.json"

        code, stdout, _ = self.run_main(
            ["--vault", str(root), "--state", str(state_path), "-q", "locate", "topic-cue.md", "x"]
        )
        self.assertEqual(code, 0)
        self.assertIn("topic.md:2:5", stdout)
        self.assertTrue(state_path.exists())

        code, stdout, _ = self.run_main(["--vault", str(root), "-q", "locate", "topic-cue.md", "missing"])
        self.assertEqual(code, 2)
        self.assertIn("Reference [^missing] not found", stdout)


if __name__ == "__main__":
    unittest.main()
