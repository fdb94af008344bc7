"""
Command-line interface for lingua-progress.
"""
from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import AppConfig, load_config
from .exceptions import ConfigError, LinguaProgressError
from .exporter import suggested_filename
from .gateway import ExchangeGateway
from .models import OperationResult, ReviewQuality, SyncState
from .store import VocabularyStore
from .sync import PairingInfo, SyncClient, SyncServer

_FINAL_STATES = (SyncState.COMPLETED, SyncState.ERROR, SyncState.CANCELLED)


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the lingua-progress CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"\n  [CONFIG ERROR] {e}")
        if e.line:
            print(f"                Line: {e.line}")
        return 1

    _configure_logging(args.verbose, config)
    db_path = args.db or config.database_path
    try:
        with VocabularyStore(db_path, curve=config.review_curve) as store:
            return args.func(args, store, config)
    except LinguaProgressError as e:
        print(f"\n  [ERROR] {e}")
        return 1


def _configure_logging(verbose: int, config: AppConfig) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="lingua-progress",
        description="Vocabulary progress tracking, backup and sync",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="Database file (default: from config or LINGUA_PROGRESS_DB)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML config file (default: ~/.lingua-progress/config.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Write a full backup",
    )
    export_parser.add_argument(
        "file",
        type=Path,
        nargs="?",
        help="Destination file (default: dated name in the current directory)",
    )
    export_parser.set_defaults(func=cmd_export)

    # import command
    import_parser = subparsers.add_parser(
        "import",
        help="Merge a backup, list export or word file",
    )
    import_parser.add_argument("file", type=Path, help="JSON file to import")
    import_parser.add_argument(
        "--list-id",
        type=int,
        help="Add imported words to this existing list",
    )
    import_parser.add_argument(
        "--list-name",
        type=str,
        help="Add imported words to the list with this name",
    )
    import_parser.set_defaults(func=cmd_import)

    # export-list command
    export_list_parser = subparsers.add_parser(
        "export-list",
        help="Export one list",
    )
    export_list_parser.add_argument("list_id", type=int, help="List ID")
    export_list_parser.add_argument(
        "file",
        type=Path,
        nargs="?",
        help="Destination file (default: named after the list)",
    )
    export_list_parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Export words and translations only",
    )
    export_list_parser.set_defaults(func=cmd_export_list)

    # lists command
    lists_parser = subparsers.add_parser("lists", help="Show word lists")
    lists_parser.set_defaults(func=cmd_lists)

    # due command
    due_parser = subparsers.add_parser("due", help="Show words due for review")
    due_parser.add_argument(
        "--date",
        type=dt.date.fromisoformat,
        help="Reference date, YYYY-MM-DD (default: today)",
    )
    due_parser.set_defaults(func=cmd_due)

    # schedule command
    schedule_parser = subparsers.add_parser(
        "schedule",
        help="Summarize upcoming reviews",
    )
    schedule_parser.add_argument(
        "--date",
        type=dt.date.fromisoformat,
        help="Reference date, YYYY-MM-DD (default: today)",
    )
    schedule_parser.set_defaults(func=cmd_schedule)

    # review command
    review_parser = subparsers.add_parser("review", help="Record a review answer")
    review_parser.add_argument("word", type=str, help="Word that was reviewed")
    review_parser.add_argument(
        "quality",
        type=str,
        help="again, hard, good, easy (or 1-4)",
    )
    review_parser.set_defaults(func=cmd_review)

    # sync-serve command
    serve_parser = subparsers.add_parser(
        "sync-serve",
        help="Open a pairing session and wait for a device",
    )
    serve_parser.add_argument("--host", type=str, help="Interface to listen on")
    serve_parser.add_argument("--port", type=int, help="Port (0 picks a free one)")
    serve_parser.set_defaults(func=cmd_sync_serve)

    # sync-push / sync-pull commands
    for name, func, help_text in (
        ("sync-push", cmd_sync_push, "Upload local data to a paired device"),
        ("sync-pull", cmd_sync_pull, "Download and merge a paired device's data"),
    ):
        sync_parser = subparsers.add_parser(name, help=help_text)
        sync_parser.add_argument(
            "token",
            type=str,
            help="Pairing token printed by sync-serve",
        )
        sync_parser.set_defaults(func=func)

    return parser


def cmd_export(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle export command."""
    destination = args.file or Path(suggested_filename())
    result = ExchangeGateway(store).export_backup(destination)
    if result.success:
        print(f"Exported {result.word_count} words to {result.path}")
    return _finish(result)


def cmd_import(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle import command."""
    print(f"\nImporting {args.file}...")
    result = ExchangeGateway(store).import_file(
        args.file,
        target_list_id=args.list_id,
        list_name=args.list_name,
    )
    if result.success and result.report is not None:
        report = result.report
        print(f"  Lists added:       {report.lists_added}")
        print(f"  Words added:       {report.words_added}")
        print(f"  Progress added:    {report.familiarity_added}")
        print(f"  Memberships added: {report.memberships_added}")
        if report.skipped:
            print(f"  Skipped:           {len(report.skipped)}")
    return _finish(result)


def cmd_export_list(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle export-list command."""
    include_progress = not args.no_progress
    destination = args.file
    if destination is None:
        word_list = store.get_word_list(args.list_id)
        destination = Path(
            suggested_filename(word_list.name, include_progress=include_progress)
        )
    result = ExchangeGateway(store).export_list(
        args.list_id, destination, include_progress=include_progress
    )
    if result.success:
        print(f"Exported {result.word_count} words to {result.path}")
    return _finish(result)


def cmd_lists(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle lists command."""
    word_lists = store.list_word_lists()
    if not word_lists:
        print("No word lists found.")
        return 0

    print(f"{'ID':<6} {'Name':<30} {'Words':<8} {'Color'}")
    print("-" * 56)
    for word_list in word_lists:
        name = (word_list.name[:27] + "...") if len(word_list.name) > 30 else word_list.name
        count = len(store.list_words(word_list.id))
        print(f"{word_list.id:<6} {name:<30} {count:<8} {word_list.color or ''}")
    return 0


def cmd_due(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle due command."""
    records = store.words_due_for_review(args.date)
    if not records:
        print("Nothing due for review.")
        return 0

    print(f"\n{len(records)} word(s) due:\n")
    print(f"{'Word':<30} {'Level':<6} {'Interval':<9} {'Next review'}")
    print("-" * 60)
    for record in records:
        next_review = record.next_review_date.isoformat() if record.next_review_date else ""
        print(
            f"{record.word_lower[:30]:<30} {record.familiarity_level:<6} "
            f"{record.interval:<9} {next_review}"
        )
    return 0


def cmd_schedule(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle schedule command."""
    summary = store.review_schedule_summary(args.date)
    print(f"\nTracked words: {summary.total_words}")
    print(f"  Overdue:         {summary.overdue}")
    print(f"  Due today:       {summary.due_today}")
    print(f"  Due in 1-3 days: {summary.due_soon}")
    print(f"  Due in 4-7 days: {summary.good}")
    print(f"  Later:           {summary.mastered}")
    if summary.upcoming_days:
        print("\nUpcoming:")
        for day, count in summary.upcoming_days.items():
            print(f"  {day.isoformat()}  {count}")
    return 0


def cmd_review(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle review command."""
    quality = ReviewQuality.coerce(args.quality)
    record = store.record_review(args.word, quality)
    print(
        f"{record.word_lower}: {quality.name.lower()} -> next review "
        f"{record.next_review_date} (interval {record.interval}, "
        f"ease {record.easiness_factor:.2f})"
    )
    return 0


def cmd_sync_serve(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle sync-serve command."""
    server = SyncServer(
        store,
        host=args.host or config.sync.host,
        port=config.sync.port if args.port is None else args.port,
        pin_length=config.sync.pin_length,
        session_timeout=config.sync.session_timeout,
    )
    info = server.start()
    print(f"\nListening on {info.ip}:{info.port}")
    print(f"  PIN:   {info.pin}")
    print(f"  Token: {info.token()}")
    print("\nWaiting for a device (Ctrl+C to cancel)...")

    final = SyncState.IDLE
    try:
        for event in server.events():
            print(f"  [{event.state.value}] {event.message}")
            if event.state in _FINAL_STATES:
                final = event.state
                break
    except KeyboardInterrupt:
        server.cancel()
        final = SyncState.CANCELLED
        print("\nCancelled.")
    finally:
        server.stop()
    return 0 if final == SyncState.COMPLETED else 1


def cmd_sync_push(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle sync-push command."""
    pairing = PairingInfo.from_token(args.token)
    with SyncClient(pairing) as client:
        client.handshake()
        counts = client.push(store)
    print(f"Uploaded. Remote added {counts.get('wordsAdded', 0)} words.")
    return 0


def cmd_sync_pull(args: argparse.Namespace, store: VocabularyStore, config: AppConfig) -> int:
    """Handle sync-pull command."""
    pairing = PairingInfo.from_token(args.token)
    with SyncClient(pairing) as client:
        client.handshake()
        report = client.pull(store)
    print(
        f"Downloaded. Added {report.lists_added} lists, "
        f"{report.words_added} words, {report.familiarity_added} progress records."
    )
    return 0


def _finish(result: OperationResult) -> int:
    if result.success:
        return 0
    print(f"\n  [ERROR] {result.error}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
