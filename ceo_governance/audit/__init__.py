"""ceo-governance audit trail.

Tamper-evident audit logging with hash chaining for
compliance review of AI-assisted development.

Features:
- Append-only audit storage (JSON Lines file or in-memory)
- SHA-256 hash chaining and HMAC-SHA256 signatures
- Full-chain verification reporting every discrepancy
- Query by actor, event type, outcome and time range
- Structured (JSON) and tabular (CSV) export

Usage:
    from ceo_governance.audit import AuditLogger, AuditEvent, FileAppendOnlyStore

    audit = AuditLogger(FileAppendOnlyStore("data/audit/audit.log"), signing_key)

    # Record an event
    entry = audit.log(AuditEvent(
        event_type=AuditEventType.USER_LOGIN,
        actor_id="user-001",
        outcome=AuditOutcome.SUCCESS,
    ))

    # Verify chain integrity
    result = audit.verify()
"""

from ceo_governance.audit.exceptions import (
    AuditError,
    ConfigurationError,
    MalformedRecordError,
    PersistenceError,
    ValidationError,
)
from ceo_governance.audit.integrity import GENESIS_HASH, compute_hash, sign
from ceo_governance.audit.models import (
    AuditChainStatus,
    AuditEvent,
    AuditEventType,
    AuditLogEntry,
    AuditOutcome,
    AuditQuery,
    ChainState,
    DiscrepancyKind,
    IntegrityDiscrepancy,
    VerificationResult,
)
from ceo_governance.audit.storage import (
    AppendOnlyStore,
    FileAppendOnlyStore,
    InMemoryAppendOnlyStore,
    get_audit_storage,
)
from ceo_governance.audit.chain import AuditLogger
from ceo_governance.audit.verify import Verifier
from ceo_governance.audit.query import QueryEngine
from ceo_governance.audit.export import Exporter, ExportFormat, parse_structured

__all__ = [
    "AuditError",
    "ConfigurationError",
    "MalformedRecordError",
    "PersistenceError",
    "ValidationError",
    "GENESIS_HASH",
    "compute_hash",
    "sign",
    "AuditChainStatus",
    "AuditEvent",
    "AuditEventType",
    "AuditLogEntry",
    "AuditOutcome",
    "AuditQuery",
    "ChainState",
    "DiscrepancyKind",
    "IntegrityDiscrepancy",
    "VerificationResult",
    "AppendOnlyStore",
    "FileAppendOnlyStore",
    "InMemoryAppendOnlyStore",
    "get_audit_storage",
    "AuditLogger",
    "Verifier",
    "QueryEngine",
    "Exporter",
    "ExportFormat",
    "parse_structured",
]
