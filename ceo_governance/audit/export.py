"""Audit export for compliance handoff.

Two renderings of an entry sequence:
- structured: lossless JSON array of full entries (event + chain fields)
- tabular: CSV summary, one row per entry
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable
from enum import Enum

from pydantic import TypeAdapter

from ceo_governance.audit.models import AuditLogEntry

TABULAR_HEADERS = [
    "Timestamp",
    "Event Type",
    "User ID",
    "Resource",
    "Action",
    "Outcome",
    "Hash",
]

_ENTRY_LIST = TypeAdapter(list[AuditLogEntry])


class ExportFormat(str, Enum):
    """Supported export formats."""

    STRUCTURED = "structured"
    TABULAR = "tabular"


class Exporter:
    """Renders audit entries for compliance reviewers."""

    def export(
        self,
        entries: Iterable[AuditLogEntry],
        fmt: ExportFormat | str = ExportFormat.STRUCTURED,
    ) -> str:
        """Render entries in the requested format.

        An empty sequence gives ``[]`` (structured) or a header-only CSV
        (tabular).

        Raises:
            ValueError: unknown format.
        """
        fmt = ExportFormat(fmt)
        if fmt == ExportFormat.TABULAR:
            return self._to_tabular(entries)
        return self._to_structured(entries)

    @staticmethod
    def _to_structured(entries: Iterable[AuditLogEntry]) -> str:
        return json.dumps(
            [entry.to_record() for entry in entries],
            indent=2,
            ensure_ascii=False,
        )

    @staticmethod
    def _to_tabular(entries: Iterable[AuditLogEntry]) -> str:
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(TABULAR_HEADERS)

        for entry in entries:
            e = entry.event
            writer.writerow([
                e.timestamp or "",
                e.event_type.value,
                e.actor_id,
                e.resource or "",
                e.action or "",
                e.outcome.value,
                entry.hash,
            ])

        return output.getvalue()


def parse_structured(document: str) -> list[AuditLogEntry]:
    """Read a structured export back into entries."""
    return _ENTRY_LIST.validate_json(document)
