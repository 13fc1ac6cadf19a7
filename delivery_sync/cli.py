# ==============================================
# CLI: Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   Thin command-line surface over SyncOrchestrator.
#
# COMMANDS:
# ---------
# 1. Sync the configured sheet (falls back to cache):
#    python -m delivery_sync.cli sync
#    python -m delivery_sync.cli sync --force
#
# 2. Show current status:
#    python -m delivery_sync.cli status
#
# 3. Mark a delivery (or its whole customer group):
#    python -m delivery_sync.cli mark <record-id> delivered
#    python -m delivery_sync.cli mark <record-id> delivered --batch
#
# 4. Replay queued offline changes:
#    python -m delivery_sync.cli drain
#
# 5. Pin a field to a column (index or header label):
#    python -m delivery_sync.cli map phone 3
#    python -m delivery_sync.cli map address "כתובת מלאה"
#
# 6. List status choices (value + Hebrew label) for a picker:
#    python -m delivery_sync.cli statuses
#
# Global flags: --offline (skip the connectivity probe), --sheet URL
#
# ==============================================

import argparse
import json
import sys
from typing import List, Optional

from delivery_sync.config import get_config
from delivery_sync.connectivity import ConnectivityMonitor
from delivery_sync.errors import DeliverySyncError
from delivery_sync.logging_setup import setup_logging
from delivery_sync.normalization.record import DeliveryStatus
from delivery_sync.analysis.mapping import SemanticField
from delivery_sync.sync_orchestrator import SyncOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delivery-sync",
        description="Sync a delivery spreadsheet with offline status changes"
    )
    parser.add_argument("--sheet", help="Sheet URL or id (overrides SHEET_URL)")
    parser.add_argument("--offline", action="store_true",
                        help="Treat the network as unavailable")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    sub = parser.add_subparsers(dest="command", required=True)

    sync_parser = sub.add_parser("sync", help="Fetch, classify and normalize the sheet")
    sync_parser.add_argument("--force", action="store_true",
                             help="Re-classify columns even if headers are unchanged")
    sync_parser.add_argument("--show", type=int, default=0, metavar="N",
                             help="Print the first N records")

    sub.add_parser("status", help="Show orchestrator status")

    mark_parser = sub.add_parser("mark", help="Change a delivery status")
    mark_parser.add_argument("record_id")
    mark_parser.add_argument("status", choices=[s.value for s in DeliveryStatus])
    mark_parser.add_argument("--batch", action="store_true",
                             help="Apply to the whole customer group")

    sub.add_parser("drain", help="Replay queued offline changes")

    sub.add_parser("statuses", help="List status choices with display labels")

    map_parser = sub.add_parser("map", help="Manually map a field to a column")
    map_parser.add_argument("field", choices=[f.value for f in SemanticField])
    map_parser.add_argument("column", help="Column index or header label")

    return parser


def _column_ref(value: str):
    return int(value) if value.isdigit() else value


def _print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(args.log_level or config.log_level)

    connectivity = ConnectivityMonitor(
        online=not args.offline,
        probe_url=config.sync.connectivity_probe_url
    )
    if not args.offline:
        connectivity.probe()

    try:
        with SyncOrchestrator(config=config, connectivity=connectivity,
                              source_ref=args.sheet) as orchestrator:
            if args.command == "sync":
                result = orchestrator.sync(force_refresh=args.force)
                _print_json(result.to_dict())
                for record in result.records[:args.show]:
                    _print_json(record.to_dict())

            elif args.command == "status":
                _print_json(orchestrator.get_status())

            elif args.command == "mark":
                outcome = orchestrator.update_status(
                    args.record_id,
                    args.status,
                    "batch" if args.batch else "single"
                )
                _print_json(outcome)

            elif args.command == "drain":
                _print_json(orchestrator.drain_queue().to_dict())

            elif args.command == "statuses":
                _print_json(orchestrator.get_status_options())

            elif args.command == "map":
                mapping = orchestrator.apply_manual_mapping(None, args.field, _column_ref(args.column))
                _print_json(mapping.to_dict())

    except DeliverySyncError as e:
        print(f"✗ {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
