"""Audit log search.

Filters the stored sequence without touching chain state.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ceo_governance.audit.exceptions import MalformedRecordError
from ceo_governance.audit.models import AuditLogEntry, AuditQuery
from ceo_governance.audit.storage import AppendOnlyStore

logger = logging.getLogger(__name__)


def decode_entry(record: str, position: int) -> AuditLogEntry:
    """Decode one stored line into an entry."""
    try:
        return AuditLogEntry.model_validate_json(record)
    except PydanticValidationError as exc:
        raise MalformedRecordError(
            position, f"{exc.error_count()} validation error(s)"
        ) from exc


def load_entries(store: AppendOnlyStore) -> list[AuditLogEntry]:
    """Decode the full stored sequence, in storage order."""
    return [
        decode_entry(record, position)
        for position, record in enumerate(store.read_all())
    ]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class QueryEngine:
    """Filters audit entries by actor, event type, outcome and time.

    Usage:
        engine = QueryEngine(store)
        denied = engine.query(outcome=AuditOutcome.DENIED)
        recent = engine.query(AuditQuery(start_time=yesterday))
    """

    def __init__(self, store: AppendOnlyStore):
        self.store = store

    def query(
        self, criteria: AuditQuery | None = None, **filters: Any
    ) -> list[AuditLogEntry]:
        """Return matching entries in storage order.

        Criteria can be passed as an AuditQuery, as keyword filters, or
        both (keywords override the model's fields).

        Raises:
            MalformedRecordError: a stored record cannot be decoded.
        """
        if filters:
            base = criteria.model_dump(exclude_unset=True) if criteria else {}
            criteria = AuditQuery(**{**base, **filters})
        elif criteria is None:
            criteria = AuditQuery()

        entries = load_entries(self.store)
        results = [entry for entry in entries if self._matches(entry, criteria)]

        logger.debug(
            "Audit query matched %d of %d entries", len(results), len(entries)
        )
        return results

    @staticmethod
    def _matches(entry: AuditLogEntry, criteria: AuditQuery) -> bool:
        event = entry.event

        if criteria.actor_id is not None and event.actor_id != criteria.actor_id:
            return False
        if criteria.event_type is not None and event.event_type != criteria.event_type:
            return False
        if criteria.outcome is not None and event.outcome != criteria.outcome:
            return False

        if criteria.start_time is not None or criteria.end_time is not None:
            occurred = event.occurred_at
            if occurred is None:
                return False
            if criteria.start_time and occurred < _as_utc(criteria.start_time):
                return False
            if criteria.end_time and occurred > _as_utc(criteria.end_time):
                return False

        return True
