"""
Booklet library command line.

USAGE:
    booklet-library [--db URL] import FILE [FILE ...] [--lenient]
    booklet-library [--db URL] export [-o PATH]
    booklet-library [--db URL] sync
    booklet-library [--db URL] dedupe [--collection NAME]
    booklet-library [--db URL] reset --yes

Several import files are merged as chunks of one booklet array.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from booklet_library.config import LOCAL_DB_URL
from booklet_library.database.collections import ALL_COLLECTIONS, BOOKLETS
from booklet_library.database.store import LocalStore
from booklet_library.dedupe import dedupe
from booklet_library.importer import import_chunks, import_file
from booklet_library.services.library import LibraryService
from booklet_library.sync.engine import RemoteSyncEngine
from booklet_library.sync.orchestrator import SyncOrchestrator
from booklet_library.sync.outbox import OutboxWorker, SyncOutbox
from booklet_library.sync.remote import RemoteClient

log = logging.getLogger(__name__)


def cmd_import(store: LocalStore, args) -> int:
    if len(args.files) == 1:
        result = import_file(store, args.files[0], lenient=args.lenient)
    else:
        try:
            texts = [Path(p).read_text(encoding="utf-8", errors="replace") for p in args.files]
        except OSError as e:
            print(f"❌ Cannot read input: {e}")
            return 1
        result = import_chunks(store, texts, lenient=args.lenient)

    if not result.success:
        print(f"❌ Import failed: {result.message}")
        return 1
    print(f"✅ Imported {result.count} records")
    for collection, count in result.collections.items():
        print(f"   {collection}: {count}")
    if result.skipped:
        print(f"   skipped (invalid): {result.skipped}")
    return 0


def cmd_export(store: LocalStore, args) -> int:
    payload = json.dumps(LibraryService(store).export_data(), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"✅ Exported to {args.output}")
    else:
        sys.stdout.write(payload + "\n")
    return 0


async def _sync(store: LocalStore) -> bool:
    async with RemoteClient() as client:
        if not client.configured:
            print("❌ Remote backend not configured (SUPABASE_URL / SUPABASE_KEY or SUPABASE_PROXY_URL)")
            return False
        engine = RemoteSyncEngine(store, client)
        outbox = SyncOutbox(store)
        # flush single-record pushes left over from the API first
        await OutboxWorker(outbox, engine).drain()
        report = await SyncOrchestrator(store, engine, outbox).sync_all()

    for collection, r in report.collections.items():
        status = "❌" if r.errors else "✓"
        print(f"  {status} {collection}: pulled={r.pulled} pushed={r.pushed} removed={r.removed}")
        for err in r.errors:
            print(f"      {err}")
    return report.success


def cmd_sync(store: LocalStore, args) -> int:
    return 0 if asyncio.run(_sync(store)) else 1


def cmd_dedupe(store: LocalStore, args) -> int:
    result = dedupe(store, args.collection)
    print(f"✅ {result.collection}: kept={result.kept} removed={result.removed}")
    return 0


def cmd_reset(store: LocalStore, args) -> int:
    if not args.yes:
        print("Refusing to reset without --yes (this deletes every local record)")
        return 1
    LibraryService(store).factory_reset()
    print("✅ Local store reset")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="booklet-library",
        description="Manage the local booklet library",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--db", default=LOCAL_DB_URL, help="Local store database URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import JSON files (noise tolerated)")
    p.add_argument("files", nargs="+", help="One file, or several chunk files to merge")
    p.add_argument("--lenient", action="store_true", help="Repair structural damage instead of failing")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("export", help="Export the full local state as JSON")
    p.add_argument("-o", "--output", help="Write to PATH instead of stdout")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("sync", help="Run one pull → dedupe → push sweep")
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser("dedupe", help="Collapse duplicate records")
    p.add_argument("--collection", default=BOOKLETS, choices=ALL_COLLECTIONS)
    p.set_defaults(func=cmd_dedupe)

    p = sub.add_parser("reset", help="Delete every local record")
    p.add_argument("--yes", action="store_true", help="Confirm the reset")
    p.set_defaults(func=cmd_reset)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)s  %(message)s",
    )

    store = LocalStore(args.db)
    if not store.open():
        print(f"❌ Cannot open local store at {args.db}")
        return 1
    try:
        return args.func(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
