"""Audit hash chain implementation.

Provides tamper-evident audit logging through cryptographic hash chaining.
Each entry links to its predecessor and is signed with the trail's key.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
import time
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError

from ceo_governance.audit.exceptions import (
    ConfigurationError,
    MalformedRecordError,
    ValidationError,
)
from ceo_governance.audit.export import Exporter, ExportFormat
from ceo_governance.audit.integrity import GENESIS_HASH, compute_hash, sign
from ceo_governance.audit.models import (
    AuditChainStatus,
    AuditEvent,
    AuditLogEntry,
    AuditQuery,
    ChainState,
    VerificationResult,
    utc_now_iso,
)
from ceo_governance.audit.query import QueryEngine
from ceo_governance.audit.storage import AppendOnlyStore, get_audit_storage
from ceo_governance.audit.verify import Verifier, parse_record

if TYPE_CHECKING:
    from ceo_governance.config import AuditSettings

logger = logging.getLogger(__name__)


def generate_event_id() -> str:
    """Unique event id: ``audit_<epoch ms>_<16 hex chars>``."""
    return f"audit_{time.time_ns() // 1_000_000}_{secrets.token_hex(8)}"


def resolve_signing_key(settings: AuditSettings) -> str:
    """Signing key from settings, or a random one where that is allowed.

    Raises:
        ConfigurationError: no key configured and one is required.
    """
    if settings.signing_key:
        return settings.signing_key
    if settings.signing_key_required:
        raise ConfigurationError(
            "AUDIT_SIGNING_KEY is required but not configured"
        )
    logger.warning(
        "No AUDIT_SIGNING_KEY configured; generated a random signing key. "
        "Signatures will not verify after this process exits."
    )
    return secrets.token_hex(32)


class AuditLogger:
    """Manages hash-chained, signed audit entries.

    Ensures tamper-evident logging by:
    1. Linking each entry to the previous entry's hash
    2. Hashing event + previous hash (SHA-256)
    3. Signing the hash (HMAC-SHA256)
    4. Appending to append-only storage before advancing the chain tip

    Calls to ``log`` are serialized, so threads sharing one logger can
    never chain two entries onto the same predecessor. One logger (one
    process) per store; other processes must not append to it.

    Usage:
        audit = AuditLogger(FileAppendOnlyStore("data/audit/audit.log"), key)

        audit.log(AuditEvent(
            event_type=AuditEventType.LLM_REQUEST,
            actor_id="user-001",
            resource="claude-sonnet-4-5",
            outcome=AuditOutcome.SUCCESS,
            metadata={"inputTokens": 1000, "cost": 0.0245},
        ))

        result = audit.verify()
    """

    def __init__(self, store: AppendOnlyStore, signing_key: str | bytes):
        """Initialize the logger and load the chain tip from storage.

        Raises:
            ConfigurationError: empty signing key.
            MalformedRecordError: the last stored record is unreadable.
        """
        if not signing_key:
            raise ConfigurationError("AuditLogger requires a non-empty signing key")
        self.store = store
        self._signing_key = signing_key
        self._lock = threading.Lock()
        self._state = self._load_chain_state()

    @classmethod
    def from_settings(
        cls,
        settings: AuditSettings | None = None,
        store: AppendOnlyStore | None = None,
    ) -> AuditLogger:
        """Build a logger from configuration."""
        if settings is None:
            from ceo_governance.config import get_settings

            settings = get_settings()
        if store is None:
            store = get_audit_storage(settings)
        return cls(store, resolve_signing_key(settings))

    def _load_chain_state(self) -> ChainState:
        records = self.store.read_all()
        if not records:
            return ChainState(last_hash=GENESIS_HASH)
        last, reason = parse_record(records[-1])
        if last is None:
            raise MalformedRecordError(len(records) - 1, reason or "unreadable")
        return ChainState(last_hash=last["hash"])

    @property
    def last_hash(self) -> str:
        """Hash of the most recently committed entry (genesis if none)."""
        return self._state.last_hash

    def log(self, event: AuditEvent | Mapping[str, Any]) -> AuditLogEntry:
        """Chain, sign and append one event.

        Automatically handles:
        - Event id and timestamp assignment
        - Previous hash linking
        - Hash and signature computation
        - Append-only storage

        Raises:
            ValidationError: the event is malformed; nothing is written.
            PersistenceError: the store write failed; the chain tip is
                left unchanged.
        """
        event = self._prepare_event(event)
        event_record = self._event_record(event)

        with self._lock:
            previous_hash = self._state.last_hash
            entry_hash = compute_hash(event_record, previous_hash)
            entry = AuditLogEntry(
                event=event,
                previous_hash=previous_hash,
                hash=entry_hash,
                signature=sign(self._signing_key, entry_hash),
            )

            line = json.dumps(
                {
                    "event": event_record,
                    "previousHash": entry.previous_hash,
                    "hash": entry.hash,
                    "signature": entry.signature,
                },
                separators=(",", ":"),
                ensure_ascii=False,
            )
            self.store.append(line)
            self._state.advance(entry_hash)

        logger.debug(
            "Appended audit entry: id=%s type=%s hash=%s",
            event.id,
            event.event_type.value,
            entry_hash[:16] + "...",
        )
        return entry

    @staticmethod
    def _prepare_event(event: AuditEvent | Mapping[str, Any]) -> AuditEvent:
        """Validate the event and fill in id/timestamp."""
        try:
            if isinstance(event, AuditEvent):
                # Revalidate: model_construct() skips validation entirely
                event = AuditEvent.model_validate(
                    event.model_dump(by_alias=True)
                )
            elif isinstance(event, Mapping):
                event = AuditEvent.model_validate(dict(event))
            else:
                raise ValidationError(
                    f"Expected AuditEvent or mapping, got {type(event).__name__}"
                )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid audit event: {exc}") from exc

        updates: dict[str, Any] = {}
        if event.id is None:
            updates["id"] = generate_event_id()
        if event.timestamp is None:
            updates["timestamp"] = utc_now_iso()
        return event.model_copy(update=updates) if updates else event

    @staticmethod
    def _event_record(event: AuditEvent) -> dict[str, Any]:
        try:
            record = event.to_record()
        except PydanticSerializationError as exc:
            raise ValidationError(f"Event metadata is not serializable: {exc}") from exc
        # Surfaces non-JSON values before anything is written
        compute_hash(record, GENESIS_HASH)
        return record

    # -- read side -------------------------------------------------------

    def verify(self) -> VerificationResult:
        """Verify integrity of the whole chain under this logger's key."""
        return Verifier(self.store, self._signing_key).verify()

    def query(
        self, criteria: AuditQuery | None = None, **filters: Any
    ) -> list[AuditLogEntry]:
        """Search entries; see QueryEngine.query."""
        return QueryEngine(self.store).query(criteria, **filters)

    def export(
        self,
        entries: Iterable[AuditLogEntry] | None = None,
        fmt: ExportFormat | str = ExportFormat.STRUCTURED,
    ) -> str:
        """Export the given entries, or the whole log."""
        if entries is None:
            entries = self.query()
        return Exporter().export(entries, fmt)

    def status(self) -> AuditChainStatus:
        """Get current status of the audit chain."""
        return Verifier(self.store, self._signing_key).status()
