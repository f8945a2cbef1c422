from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from cuesync.commands import run_arrange, run_backward, run_forward, run_locate, run_rescan, run_sync_all, run_watch
from cuesync.errors import CueSyncError, DocumentNotFound, WriteConflict

from .version import __version__

CUESYNC_HELP = f"""cuesync {__version__} - Cornell footnote sync

Keeps footnote definitions consistent between a source note and its cue note.

USAGE:
    cuesync [GLOBAL OPTIONS] <COMMAND> [ARGS]

COMMANDS:
    forward (s2c) <SOURCE>      Rewrite the cue note from the source's definitions
    backward (c2s) <CUE>        Rewrite the source's definitions from the cue note
    sync-all                    Forward sync every source that has a cue note
    arrange <SOURCE>            Create missing cue and summary notes
    rescan                      Rebuild the source/cue/summary relationship table
    watch                       Sync automatically while documents change
    locate <CUE> <REF>          Print where the source first cites REF

GLOBAL OPTIONS:
    --vault DIR                 Vault root (default: current directory)
    --state FILE                State file (default: <vault>/.cuesync/state.json)
    -v, --verbose               Debug logging
    -q, --quiet                 Only warnings and errors
    -V, --version               Print version

Use 'cuesync <command> --help' for more information.
"""

COMMAND_ALIASES = {"s2c": "forward", "c2s": "backward"}


def _print_notice(message: str) -> None:
    print(message)


def _handle_common_errors(fn):
    try:
        return fn()
    except (DocumentNotFound, WriteConflict) as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2
    except CueSyncError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - explicit user-facing fallback path.
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _build_global_parser():
    parser = argparse.ArgumentParser(prog="cuesync", add_help=False)
    parser.add_argument("--vault", type=Path, default=Path("."))
    parser.add_argument("--state", type=Path, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-q", "--quiet", action="store_true")
    return parser


def _build_command_parser(command: str, prog_name: str):
    descriptions = {
        "forward": "forward (s2c) - Rewrite the cue note from the source note's definitions",
        "backward": "backward (c2s) - Rewrite the source note's definitions from its cue note",
        "sync-all": "sync-all - Forward sync every source note that has a cue note",
        "arrange": "arrange - Create the cue and summary notes of a source note",
        "rescan": "rescan - Rebuild the relationship table from the vault",
        "watch": "watch - Sync automatically while documents change",
        "locate": "locate - Print where the source note first cites a footnote",
    }
    parser = argparse.ArgumentParser(prog=prog_name, description=descriptions[command])
    if command in {"forward", "arrange"}:
        parser.add_argument("document", help="Source note, relative to the vault")
    elif command == "backward":
        parser.add_argument("document", help="Cue note, relative to the vault")
    elif command == "locate":
        parser.add_argument("document", help="Cue note, relative to the vault")
        parser.add_argument("ref", help="Footnote reference name")
    return parser


def _dispatch(command: str, args, vault: Path, state_path: Path | None):
    notifier = _print_notice
    if command == "forward":
        return run_forward(vault, args.document, state_path, notifier)
    if command == "backward":
        return run_backward(vault, args.document, state_path, notifier)
    if command == "sync-all":
        return run_sync_all(vault, state_path, notifier)
    if command == "arrange":
        return run_arrange(vault, args.document, state_path, notifier)
    if command == "rescan":
        return run_rescan(vault, state_path, notifier)
    if command == "watch":
        return run_watch(vault, state_path, notifier)
    if command == "locate":
        return run_locate(vault, args.document, args.ref, state_path, notifier)
    raise ValueError(f"Unknown command: {command}")


def main(argv=None):
    args_list = list(sys.argv[1:] if argv is None else argv)
    if not args_list or args_list[0] in {"-h", "--help"}:
        print(CUESYNC_HELP)
        return 0

    if args_list[0] in {"-V", "--version"}:
        print(f"cuesync {__version__}")
        return 0

    global_args, rest = _build_global_parser().parse_known_args(args_list)
    if not rest:
        print(CUESYNC_HELP)
        return 0

    subcmd = rest[0]
    command = COMMAND_ALIASES.get(subcmd, subcmd)
    if command not in {"forward", "backward", "sync-all", "arrange", "rescan", "watch", "locate"}:
        print(f"error: unknown command '{subcmd}'. Use 'cuesync --help'.", file=sys.stderr)
        return 2

    args = _build_command_parser(command, f"cuesync {subcmd}").parse_args(rest[1:])
    _configure_logging(global_args.verbose, global_args.quiet)
    return _handle_common_errors(lambda: _dispatch(command, args, global_args.vault, global_args.state))
