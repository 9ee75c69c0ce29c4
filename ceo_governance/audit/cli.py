"""Audit trail command line.

Usage:
    ceo-governance-audit verify [--format json]
    ceo-governance-audit query --outcome denied --since 2025-01-01T00:00:00Z
    ceo-governance-audit export --format tabular > audit.csv
    ceo-governance-audit status

Settings come from AUDIT_* environment variables (see AuditSettings).
Exit codes: 0 ok, 1 verification failed, 2 usage or configuration error.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ceo_governance.audit.exceptions import AuditError, ConfigurationError
from ceo_governance.audit.export import Exporter, ExportFormat
from ceo_governance.audit.models import (
    AuditEventType,
    AuditOutcome,
    AuditQuery,
    VerificationResult,
    parse_timestamp,
)
from ceo_governance.audit.query import QueryEngine
from ceo_governance.audit.storage import FileAppendOnlyStore
from ceo_governance.audit.verify import Verifier
from ceo_governance.config import AuditSettings, load_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ceo-governance-audit",
        description="Verify, search and export the tamper-evident audit log.",
    )
    parser.add_argument("--log-path", help="Audit log file (default: AUDIT_LOG_PATH)")
    sub = parser.add_subparsers(dest="command")

    v = sub.add_parser("verify", help="Verify chain, hashes and signatures")
    v.add_argument("--format", dest="output_format", choices=["text", "json"], default="text")

    q = sub.add_parser("query", help="Search audit entries")
    q.add_argument("--actor", dest="actor_id")
    q.add_argument("--event-type", choices=[t.value for t in AuditEventType])
    q.add_argument("--outcome", choices=[o.value for o in AuditOutcome])
    q.add_argument("--since", dest="start_time", help="ISO-8601 lower bound (inclusive)")
    q.add_argument("--until", dest="end_time", help="ISO-8601 upper bound (inclusive)")
    q.add_argument(
        "--format",
        dest="export_format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.STRUCTURED.value,
    )

    e = sub.add_parser("export", help="Export the full log")
    e.add_argument(
        "--format",
        dest="export_format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.STRUCTURED.value,
    )

    sub.add_parser("status", help="Show chain status")
    return parser


def _require_key(settings: AuditSettings) -> str:
    if not settings.signing_key:
        raise ConfigurationError(
            "AUDIT_SIGNING_KEY must be set to check signatures"
        )
    return settings.signing_key


def _print_verification(result: VerificationResult, output_format: str) -> None:
    if output_format == "json":
        print(result.model_dump_json(indent=2))
        return

    status = "OK" if result.valid else "FAIL"
    print(f"[{status}] {result.entries_checked} entries checked")
    for error in result.errors:
        print(f"- {error.kind.value} position={error.position} {error.message}")


def _write(document: str) -> None:
    sys.stdout.write(document if document.endswith("\n") else document + "\n")


def _query_from_args(args: argparse.Namespace) -> AuditQuery:
    try:
        return AuditQuery(
            actor_id=args.actor_id,
            event_type=args.event_type,
            outcome=args.outcome,
            start_time=parse_timestamp(args.start_time) if args.start_time else None,
            end_time=parse_timestamp(args.end_time) if args.end_time else None,
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid query: {exc}") from exc


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    try:
        overrides = {"log_path": args.log_path} if args.log_path else {}
        settings = load_settings(**overrides)
        logging.basicConfig(level=settings.log_level)
        store = FileAppendOnlyStore(settings.log_path, fsync=settings.fsync)

        if args.command == "verify":
            result = Verifier(store, _require_key(settings)).verify()
            _print_verification(result, args.output_format)
            return 0 if result.valid else 1

        if args.command == "query":
            entries = QueryEngine(store).query(_query_from_args(args))
            _write(Exporter().export(entries, args.export_format))
            return 0

        if args.command == "export":
            entries = QueryEngine(store).query()
            _write(Exporter().export(entries, args.export_format))
            return 0

        if args.command == "status":
            status = Verifier(store, _require_key(settings)).status()
            print(status.model_dump_json(indent=2))
            return 0 if status.chain_valid else 1

    except AuditError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2

    parser.print_help()
    return 2
