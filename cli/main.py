#!/usr/bin/env python3
"""
Meeting Roster CLI - operate the directory without the web client.

    python -m cli.main init-db
    python -m cli.main serve --port 8420
    python -m cli.main extract sheet.jpg > rows.json
    python -m cli.main ingest rows.json --owner <account-id> --date 2024-05-01
    python -m cli.main members --owner <account-id> -q contador
"""

import argparse
import json
import mimetypes
import sys
from pathlib import Path

from roster import config, timeline
from roster import db as db_module
from roster.directory import DirectoryStore
from roster.errors import ReconciliationError, RosterError
from roster.models import ExtractedEntry
from roster.observability import configure_logging
from roster.storage import SQLiteDirectoryBackend


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def print_table(headers: list, rows: list, widths: list = None):
    """Print a simple table."""
    if not widths:
        widths = [max(len(str(row[i])) for row in [headers] + rows) for i in range(len(headers))]

    header_str = " │ ".join(str(h).ljust(w) for h, w in zip(headers, widths))
    print(header_str)
    print("─" * len(header_str))

    for row in rows:
        print(" │ ".join(str(c)[:w].ljust(w) for c, w in zip(row, widths)))


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _directory(args):
    backend = SQLiteDirectoryBackend(args.db)
    return DirectoryStore(backend).for_owner(args.owner)


def _load_entries(path: Path) -> list[ExtractedEntry]:
    """Rows as written by `extract`: a JSON list, or {"items": [...]} from the API."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("items", data.get("entries", []))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of rows")
    return [ExtractedEntry.from_dict(row) for row in data if isinstance(row, dict)]


# ==== Commands ====


def cmd_init_db(args) -> int:
    path = Path(args.db) if args.db else db_module.get_db_path()
    db_module.init_db(path)
    ok, message = db_module.integrity_check(path)
    print(f"OK: initialized {path} (integrity: {message})")
    return 0 if ok else 1


def cmd_serve(args) -> int:
    import uvicorn

    from api.server import create_app
    from api.services import Services

    app = create_app(Services(args.db) if args.db else None)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


def cmd_extract(args) -> int:
    from roster.extraction import SheetExtractor

    image_path = Path(args.image)
    mime_type = args.mime_type or mimetypes.guess_type(image_path.name)[0] or "image/jpeg"
    entries = SheetExtractor().extract(image_path.read_bytes(), mime_type)
    _print_json([e.to_dict() for e in entries])
    return 0


def cmd_ingest(args) -> int:
    entries = _load_entries(Path(args.file))
    directory = _directory(args)
    try:
        result = directory.add_or_update_members(entries, args.date)
    except ReconciliationError as e:
        _print_json(e.result.to_dict() if e.result else {"error": str(e)})
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    _print_json(result.to_dict())
    return 0 if result.ok else 1


def cmd_members(args) -> int:
    directory = _directory(args)
    members = directory.search_members(args.query) if args.query else directory.members

    if args.json:
        _print_json([m.to_dict() for m in members])
        return 0

    print_header(f"MEMBERS ({len(members)})")
    if not members:
        print("No members.")
        return 0

    rows = []
    for member in members:
        latest = next(iter(timeline.sorted_by_recency(member.references)), None)
        rows.append(
            [
                member.name,
                member.company or "-",
                member.sector or "-",
                f"{latest.date}: {latest.text}" if latest else "-",
            ]
        )
    print_table(["Name", "Company", "Sector", "Latest request"], rows, [24, 20, 16, 50])
    return 0


def cmd_guests(args) -> int:
    directory = _directory(args)
    guests = directory.search_guests(args.query) if args.query else directory.guests

    if args.json:
        _print_json([g.to_dict() for g in guests])
        return 0

    print_header(f"GUESTS ({len(guests)})")
    rows = [
        [g.visit_date, g.name, g.company or "-", g.invited_by_member_name or "-"] for g in guests
    ]
    if rows:
        print_table(["Visit", "Name", "Company", "Invited by"], rows, [10, 24, 20, 24])
    else:
        print("No guests.")
    return 0


# ==== Parser ====


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="roster", description="Meeting Roster")
    p.add_argument("--db", default=None, help="SQLite path (default: ROSTER_DB or app home)")
    p.add_argument("--log-level", default=config.LOG_LEVEL)
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("init-db", help="Create or migrate the database")
    s.set_defaults(func=cmd_init_db)

    s = sub.add_parser("serve", help="Run the API server")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8420)
    s.set_defaults(func=cmd_serve)

    s = sub.add_parser("extract", help="Extract rows from a sheet photo (prints JSON)")
    s.add_argument("image")
    s.add_argument("--mime-type", default=None)
    s.set_defaults(func=cmd_extract)

    s = sub.add_parser("ingest", help="Reconcile a JSON batch of rows into a directory")
    s.add_argument("file")
    s.add_argument("--owner", required=True, help="Account id that owns the directory")
    s.add_argument("--date", required=True, help="Meeting date, YYYY-MM-DD")
    s.set_defaults(func=cmd_ingest)

    for name, func in (("members", cmd_members), ("guests", cmd_guests)):
        s = sub.add_parser(name, help=f"List {name} of a directory")
        s.add_argument("--owner", required=True)
        s.add_argument("-q", "--query", default=None, help="Case-insensitive search")
        s.add_argument("--json", action="store_true", help="Print JSON instead of a table")
        s.set_defaults(func=func)

    return p


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, config.LOG_JSON)

    try:
        return args.func(args)
    except RosterError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
