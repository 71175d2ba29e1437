"""Napwatch diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from napwatch.clock import SystemClock
from napwatch.config import NapwatchSettings
from napwatch.notifications import format_clock
from napwatch.storage import (
    FileSessionStore,
    HistoryUnavailableError,
    NapHistoryStore,
    SessionStoreError,
)


def positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def load_store(settings: NapwatchSettings) -> NapHistoryStore:
    try:
        store = NapHistoryStore(settings.chroma_persist_path)
        store.ping()
        return store
    except HistoryUnavailableError as exc:
        print(f"History unavailable: {exc}")
        raise SystemExit(1)


def load_session_store(settings: NapwatchSettings) -> FileSessionStore:
    return FileSessionStore(settings.session_store_path)


def cmd_active(args: argparse.Namespace) -> None:
    settings = NapwatchSettings()
    store = load_session_store(settings)
    try:
        sessions = store.load()
    except SessionStoreError as exc:
        print(f"Persisted naps unreadable: {exc}")
        raise SystemExit(1)

    now = SystemClock().now()
    rows = [
        {
            "subject_id": session.subject_id,
            "subject_name": session.subject_name,
            "start_time": session.start_time.isoformat(),
            "elapsed_seconds": session.elapsed_seconds(now),
            "notes": session.notes,
        }
        for session in sessions.values()
    ]
    if args.json:
        print(json.dumps(rows, indent=2))
    elif not rows:
        print("No active naps")
    else:
        for row in rows:
            print(
                f"{row['subject_id']} [{row['subject_name']}] "
                f"{format_clock(row['elapsed_seconds'])} since {row['start_time']}"
            )


def cmd_history(args: argparse.Namespace) -> None:
    settings = NapwatchSettings()
    store = load_store(settings)
    try:
        records = store.list_naps(args.subject_id, limit=args.limit)
    except HistoryUnavailableError as exc:
        print(f"History unavailable: {exc}")
        raise SystemExit(1)

    payload = [
        {
            "id": record.id,
            "subject_id": record.subject_id,
            "start_time": record.start_time.isoformat(),
            "end_time": record.end_time.isoformat(),
            "duration_seconds": record.duration_seconds,
            "notes": record.notes,
        }
        for record in records
    ]
    print(json.dumps(payload, indent=2))


def cmd_clear(args: argparse.Namespace) -> None:
    if not args.yes:
        print("Refusing to clear active naps without --yes")
        raise SystemExit(2)

    settings = NapwatchSettings()
    store = load_session_store(settings)
    try:
        store.clear()
    except SessionStoreError as exc:
        print(f"Unable to clear active naps: {exc}")
        raise SystemExit(1)
    print(f"Cleared {store.path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Napwatch diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_active = sub.add_parser("active", help="List persisted active naps")
    p_active.add_argument("--json", action="store_true", help="Output JSON")
    p_active.set_defaults(func=cmd_active)

    p_history = sub.add_parser("history", help="List recorded naps")
    p_history.add_argument("--subject-id")
    p_history.add_argument(
        "--limit",
        type=positive_int,
        default=None,
        help="If provided, show only the latest N naps",
    )
    p_history.set_defaults(func=cmd_history)

    p_clear = sub.add_parser("clear", help="Drop persisted active naps")
    p_clear.add_argument("--yes", action="store_true", help="Confirm removal")
    p_clear.set_defaults(func=cmd_clear)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
