"""
context-stacker: stage workspace files into named tracks and copy them as LLM context.

Usage
-----
Run `context-stacker --help` for the full list of commands. Common examples:
    - Stage a folder (honoring .gitignore and the configured exclusions):
        context-stacker add src/

    - Copy the active track to a file, with a summary header:
        context-stacker copy --header --output context.md

    - Work on a second track:
        context-stacker track new "Bug 42"
        context-stacker add tests/test_parser.py
        context-stacker track switch Main

    - Log to a file:
        context-stacker --log-file stacker.log add .
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from context_stacker import __version__
from context_stacker.config import MAX_DISCOVERY_RESULTS
from context_stacker.discovery import discover_workspace_folders, stage_targets
from context_stacker.exceptions import ContextStackerError, TrackNotFoundError
from context_stacker.exclusions import ExcludeProvider
from context_stacker.file_manipulation import canonical_id, relpath
from context_stacker.filesystem import LocalFileSystem
from context_stacker.lifecycle import FileEventQueue
from context_stacker.logging import setup_logging
from context_stacker.output_construction import build_payload
from context_stacker.persistence import JsonFileStorage, PersistenceService
from context_stacker.preview import PreviewRegistry, PreviewSession
from context_stacker.scheduling import CancellationToken
from context_stacker.settings import Settings, load_settings
from context_stacker.stats import enrich_file_stats
from context_stacker.tokens import format_shorthand, total_tokens
from context_stacker.track_store import TrackStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from context_stacker.models import ContextTrack, StagedFile

    Command = Callable[["Session", argparse.Namespace], Awaitable[int]]

logger = setup_logging()


@dataclass
class Session:
    """Everything a command needs, built once from the settings."""

    settings: Settings
    store: TrackStore
    fs: LocalFileSystem
    excludes: ExcludeProvider

    @property
    def root(self) -> str:
        return canonical_id(self.settings.workspace)

    @classmethod
    def open(cls, settings: Settings) -> Session:
        persistence = PersistenceService(JsonFileStorage(settings.state_file), max_bytes=settings.max_state_bytes)
        return cls(
            settings=settings,
            store=TrackStore(persistence),
            fs=LocalFileSystem(),
            excludes=ExcludeProvider(settings.workspace, settings.excludes, settings.default_excludes),
        )


# ------------------------------ Helpers -------------------------------------


def resolve_track(store: TrackStore, ref: str) -> ContextTrack:
    """Find a track by id first, then by name.

    Raises:
        TrackNotFoundError: no track has this id or name
    """
    track = store.get_track(ref) or store.find_track_by_name(ref)
    if track is None:
        raise TrackNotFoundError(track=ref, message=f"No such track: {ref}")
    return track


def select_staged(track: ContextTrack, paths: Sequence[str]) -> list[StagedFile]:
    wanted = {canonical_id(p) for p in paths}
    selected = [f for f in track.files if f.id in wanted]
    for missing in wanted - {f.id for f in selected}:
        print(f"Not staged: {missing}", file=sys.stderr)
    return selected


def _install_interrupt(token: CancellationToken) -> None:
    # Ctrl-C stops the scan between folders; files already staged stay staged.
    with contextlib.suppress(NotImplementedError, RuntimeError):
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, token.cancel)


# ------------------------------ Commands ------------------------------------


async def cmd_add(session: Session, args: argparse.Namespace) -> int:
    token = CancellationToken()
    _install_interrupt(token)
    targets = [canonical_id(p) for p in args.paths]
    if args.exclude:
        session.excludes.user_patterns.extend(args.exclude)
        session.excludes.invalidate()

    added = await stage_targets(session.fs, session.store, targets, session.excludes.get_exclude_patterns(), token)
    await enrich_file_stats(session.fs, added, session.settings.max_analysis_bytes)
    if token.is_cancelled:
        print("Interrupted, keeping the files found so far.", file=sys.stderr)

    print(f"Added {len(added)} files (~{format_shorthand(total_tokens(added))} tokens)")
    threshold = session.settings.large_file_threshold
    for f in added:
        if f.stats is not None and f.stats.token_count >= threshold:
            print(f"Large file: {relpath(f.id, session.root)} (~{format_shorthand(f.stats.token_count)} tokens)")
    return 0


async def cmd_remove(session: Session, args: argparse.Namespace) -> int:
    selected = select_staged(session.store.get_active_track(), args.paths)
    if selected:
        session.store.remove_files_from_active(selected)
    print(f"Removed {len(selected)} files")
    return 0


async def cmd_list(session: Session, args: argparse.Namespace) -> int:
    track = session.store.get_active_track()
    if args.stats:
        await enrich_file_stats(session.fs, track.files, session.settings.max_analysis_bytes)
    print(f"{track.name} ({len(track.files)} files)")
    for f in track.files:
        line = f"{'*' if f.is_pinned else ' '} {relpath(f.id, session.root)}"
        if args.stats and f.stats is not None:
            line += "  binary" if f.is_binary else f"  {format_shorthand(f.stats.token_count)}"
        print(line)
    return 0


async def cmd_clear(session: Session, args: argparse.Namespace) -> int:  # noqa: ARG001
    before = len(session.store.get_active_track().files)
    session.store.clear_active()
    kept = len(session.store.get_active_track().files)
    print(f"Cleared {before - kept} files ({kept} pinned kept)")
    return 0


async def cmd_pin(session: Session, args: argparse.Namespace) -> int:
    selected = select_staged(session.store.get_active_track(), args.paths)
    session.store.toggle_files_pin(selected)
    for f in selected:
        print(f"{'pinned' if f.is_pinned else 'unpinned'} {relpath(f.id, session.root)}")
    return 0


async def cmd_unpin_all(session: Session, args: argparse.Namespace) -> int:  # noqa: ARG001
    session.store.unpin_all_in_active()
    return 0


async def cmd_copy(session: Session, args: argparse.Namespace) -> int:
    track = session.store.get_active_track()
    if not track.files:
        print("Context is empty.", file=sys.stderr)
        return 1
    payload = await build_payload(session.fs, track.files, session.root, header=args.header)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"Wrote {args.output} files={len(track.files)}")
    else:
        sys.stdout.write(payload)
    return 0


async def cmd_preview(session: Session, args: argparse.Namespace) -> int:  # noqa: ARG001
    registry = PreviewRegistry()
    preview, _ = registry.open(
        lambda: PreviewSession(
            session.store,
            session.fs,
            sys.stdout.write,
            root=session.root,
            large_file_tokens=session.settings.large_file_threshold,
        )
    )
    try:
        await preview.refresh()
    finally:
        registry.close()
    return 0


async def cmd_folders(session: Session, args: argparse.Namespace) -> int:
    folders = await discover_workspace_folders(
        session.fs,
        [session.root],
        session.excludes.get_exclude_patterns(),
        args.limit,
    )
    for folder in folders:
        print(relpath(folder, session.root))
    return 0


async def cmd_prune(session: Session, args: argparse.Namespace) -> int:  # noqa: ARG001
    """Forget staged files that no longer exist on disk, in every track."""
    ids = list(dict.fromkeys(f.id for t in session.store.all_tracks for f in t.files))
    stats = await asyncio.gather(*(session.fs.stat(i) for i in ids), return_exceptions=True)
    queue = FileEventQueue(session.store, session.fs)
    gone = [i for i, st in zip(ids, stats, strict=True) if isinstance(st, OSError)]
    for resource_id in gone:
        queue.queue_delete(resource_id)
    await queue.flush()
    print(f"Pruned {len(gone)} missing files")
    return 0


async def cmd_reset(session: Session, args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to reset without --yes.", file=sys.stderr)
        return 1
    session.store.hard_reset()
    print("All tracks were reset.")
    return 0


async def cmd_track_list(session: Session, args: argparse.Namespace) -> int:  # noqa: ARG001
    for track in session.store.all_tracks:
        marker = "*" if track.id == session.store.active_track_id else " "
        print(f"{marker} {track.name}  [{track.id}]  {len(track.files)} files")
    return 0


async def cmd_track_new(session: Session, args: argparse.Namespace) -> int:
    track_id = session.store.create_track(args.name)
    print(f"Created and switched to {session.store.get_active_track().name} [{track_id}]")
    return 0


async def cmd_track_switch(session: Session, args: argparse.Namespace) -> int:
    track = resolve_track(session.store, args.track)
    session.store.switch_to_track(track.id)
    print(f"Active track: {track.name}")
    return 0


async def cmd_track_rename(session: Session, args: argparse.Namespace) -> int:
    track = resolve_track(session.store, args.track)
    if not session.store.rename_track(track.id, args.name):
        raise ContextStackerError(message=f"A track named {args.name!r} already exists.")
    return 0


async def cmd_track_delete(session: Session, args: argparse.Namespace) -> int:
    track = resolve_track(session.store, args.track)
    if not session.store.delete_track(track.id):
        raise ContextStackerError(message="Cannot delete the last remaining track.")
    print(f"Deleted {track.name}")
    return 0


async def cmd_track_move(session: Session, args: argparse.Namespace) -> int:
    track = resolve_track(session.store, args.track)
    session.store.move_track_relative(track.id, args.direction)
    return 0


# ------------------------------ CLI -----------------------------------------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="context-stacker",
        description="Stage workspace files into named tracks and copy them as LLM context.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--workspace", type=str, default=".", help="Workspace root.")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    p.add_argument("--log-level", type=str, default=None, help="Minimum log level.")
    sub = p.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Stage files and folders in the active track.")
    add.add_argument("paths", nargs="+")
    add.add_argument("--exclude", action="append", default=[], help="Extra exclusion glob (repeatable).")
    add.set_defaults(func=cmd_add)

    remove = sub.add_parser("remove", help="Unstage files from the active track.")
    remove.add_argument("paths", nargs="+")
    remove.set_defaults(func=cmd_remove)

    ls = sub.add_parser("list", help="List the active track.")
    ls.add_argument("--stats", action="store_true", help="Show token estimates.")
    ls.set_defaults(func=cmd_list)

    sub.add_parser("clear", help="Remove every unpinned file.").set_defaults(func=cmd_clear)

    pin = sub.add_parser("pin", help="Toggle the pin of staged files.")
    pin.add_argument("paths", nargs="+")
    pin.set_defaults(func=cmd_pin)

    sub.add_parser("unpin-all", help="Unpin every file of the active track.").set_defaults(func=cmd_unpin_all)

    copy = sub.add_parser("copy", help="Render the active track as one text payload.")
    copy.add_argument("--output", type=str, default="", help="Write to this file instead of stdout.")
    copy.add_argument("--header", action="store_true", help="Prepend a file count and token estimate.")
    copy.set_defaults(func=cmd_copy)

    sub.add_parser("preview", help="Show the token summary and payload.").set_defaults(func=cmd_preview)

    folders = sub.add_parser("folders", help="List candidate folders to stage.")
    folders.add_argument("--limit", type=int, default=MAX_DISCOVERY_RESULTS, help="Maximum marker files examined.")
    folders.set_defaults(func=cmd_folders)

    sub.add_parser("prune", help="Forget staged files missing on disk.").set_defaults(func=cmd_prune)

    reset = sub.add_parser("reset", help="Delete every track and start over.")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset.")
    reset.set_defaults(func=cmd_reset)

    track = sub.add_parser("track", help="Manage tracks.")
    tsub = track.add_subparsers(dest="track_command", required=True)
    tsub.add_parser("list", help="List tracks.").set_defaults(func=cmd_track_list)
    new = tsub.add_parser("new", help="Create a track and switch to it.")
    new.add_argument("name")
    new.set_defaults(func=cmd_track_new)
    switch = tsub.add_parser("switch", help="Activate a track (by id or name).")
    switch.add_argument("track")
    switch.set_defaults(func=cmd_track_switch)
    rename = tsub.add_parser("rename", help="Rename a track.")
    rename.add_argument("track")
    rename.add_argument("name")
    rename.set_defaults(func=cmd_track_rename)
    delete = tsub.add_parser("delete", help="Delete a track.")
    delete.add_argument("track")
    delete.set_defaults(func=cmd_track_delete)
    move = tsub.add_parser("move", help="Move a track up or down.")
    move.add_argument("track")
    move.add_argument("direction", choices=["up", "down"])
    move.set_defaults(func=cmd_track_move)
    return p


def parse_args(argv: Sequence[str] | None = None) -> tuple[argparse.Namespace, Settings]:
    args = build_parser().parse_args(argv)
    settings = load_settings(
        args.workspace,
        {"log_file": args.log_file, "log_level": args.log_level},
    )
    return args, settings


def main(argv: Sequence[str] | None = None) -> int:
    try:
        args, settings = parse_args(argv)
    except (ContextStackerError, ValidationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if settings.log_file or settings.log_level != "INFO":
        setup_logging(settings.log_file or None, settings.log_level, force=True)

    command: Command = args.func
    try:
        return asyncio.run(command(Session.open(settings), args))
    except ContextStackerError as e:
        logger.error("Command %s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
