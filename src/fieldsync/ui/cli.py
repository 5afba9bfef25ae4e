# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from fieldsync.app import load_config, sync_records
from fieldsync.config import ConfigError, configure_logging
from fieldsync.config.schema import build_registry

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from fieldsync.domain.reconciliation import SyncReport
    from fieldsync.domain.schema import SchemaRegistry

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile records field by field across sources")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Synchronise one or more records")
    sync.add_argument("keys", nargs="+", metavar="KEY", help="Record key, e.g. an email address")
    sync.add_argument(
        "--config",
        type=Path,
        help="TOML schema file (defaults to the built-in users/Contacts schema)",
    )
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan the writes without applying them",
    )
    sync.add_argument(
        "--json",
        action="store_true",
        help="Print one JSON report per key instead of a summary",
    )
    sync.add_argument("--verbose", action="store_true", help="Enable debug logging")

    fields = subparsers.add_parser("fields", help="List canonical fields and source mappings")
    fields.add_argument("--config", type=Path, help="TOML schema file")

    return parser.parse_args(list(argv))


def _print_report(report: SyncReport) -> None:
    header = "dry run" if report.dry_run else "sync"
    status = "ok" if report.ok else f"{len(report.failures)} failure(s)"
    print(f"{report.key} ({header}): {status}")
    for field in report.fields:
        line = f"  {field.field}: {field.outcome}"
        if field.winner_source is not None:
            line += f" (winner {field.winner_source}"
            if field.targets:
                line += f" -> {', '.join(field.targets)}"
            line += ")"
        print(line)
        for failure in field.failures():
            print(f"    {failure.kind} from {failure.source or '-'}: {failure.message}")


def _print_fields(registry: SchemaRegistry) -> None:
    sources = registry.sources()
    print(f"Sources (priority order): {', '.join(sources)}")
    for canonical in registry.canonical_fields():
        natives = [
            f"{source}={native}"
            for source in sources
            if (native := registry.native_name_for(source, canonical.name)) is not None
        ]
        mapped = ", ".join(natives) if natives else "not synced"
        print(f"  {canonical.name} [{canonical.type}]: {mapped}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if getattr(parsed_args, "verbose", False) else logging.INFO)

    try:
        if parsed_args.command == "fields":
            _print_fields(build_registry(load_config(parsed_args.config)))
            return
        reports = sync_records(
            parsed_args.keys,
            config_path=parsed_args.config,
            dry_run=parsed_args.dry_run,
        )
    except ConfigError:
        log.exception("Configuration error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(1)

    for report in reports:
        if parsed_args.json:
            print(json.dumps(report.to_dict()))
        else:
            _print_report(report)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
