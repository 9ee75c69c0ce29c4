"""Audit data models.

Immutable audit events, hash-chained log entries and the
reports produced when the chain is verified.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ceo_governance.audit.integrity import GENESIS_HASH


class AuditEventType(str, Enum):
    """Types of auditable events."""

    # Authentication events
    USER_LOGIN = "user.login"
    USER_LOGOUT = "user.logout"
    API_KEY_CREATED = "api_key.created"
    API_KEY_REVOKED = "api_key.revoked"

    # AI operations
    LLM_REQUEST = "llm.request"
    LLM_RESPONSE = "llm.response"
    TOOL_EXECUTION = "tool.execution"
    MCP_SERVER_CALL = "mcp_server.call"

    # Data access
    DATA_READ = "data.read"
    DATA_WRITE = "data.write"
    DATA_DELETE = "data.delete"

    # Security events
    SECURITY_SCAN = "security.scan"
    SECURITY_VIOLATION = "security.violation"
    ACCESS_DENIED = "access.denied"

    # Administrative actions
    CONFIG_CHANGE = "config.change"
    USER_CREATED = "user.created"
    USER_DELETED = "user.deleted"
    PERMISSION_GRANTED = "permission.granted"
    PERMISSION_REVOKED = "permission.revoked"

    # Cost tracking
    BUDGET_ALERT = "budget.alert"
    COST_THRESHOLD_EXCEEDED = "cost.threshold_exceeded"


class AuditOutcome(str, Enum):
    """Outcome of an audited action."""

    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Accepts a trailing ``Z``. Naive values are taken to be UTC.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return (
        datetime.now(UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class AuditEvent(BaseModel):
    """A single governed action.

    Created by a collaborator (pricing, scanning, auth, ...) and frozen
    once constructed. ``id`` and ``timestamp`` may be left empty; the
    logger fills them in before the event is chained.

    Serialized with camelCase keys (``eventType``, ``actorId``,
    ``containsPII``); snake_case names are accepted on input too.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    # Identification
    id: str | None = None
    timestamp: str | None = None
    event_type: AuditEventType

    # Actor information
    actor_id: str = Field(min_length=1)
    actor_email: str | None = None
    workspace_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    # Event details
    resource: str | None = None
    action: str | None = None
    outcome: AuditOutcome

    metadata: dict[str, Any] = Field(default_factory=dict)

    # Security context
    session_id: str | None = None
    request_id: str | None = None

    # Privacy controls
    contains_pii: bool | None = Field(default=None, alias="containsPII")
    retention_days: int | None = Field(default=None, ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id_is_absent(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> Any:
        if value == "":
            return None
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            return value.isoformat().replace("+00:00", "Z")
        if isinstance(value, str):
            try:
                parse_timestamp(value)
            except ValueError as exc:
                raise ValueError(f"timestamp is not ISO-8601: {value!r}") from exc
        return value

    @property
    def occurred_at(self) -> datetime | None:
        """Parsed ``timestamp``, or None if not yet assigned."""
        if self.timestamp is None:
            return None
        return parse_timestamp(self.timestamp)

    def to_record(self) -> dict[str, Any]:
        """Wire form of the event, exactly as it is hashed and persisted.

        Unset optional fields are omitted; metadata is kept verbatim.
        """
        record = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in record.items() if value is not None}


class AuditLogEntry(BaseModel):
    """A chained, signed audit entry.

    Chain integrity:
    - ``hash`` is SHA-256 over the event and ``previous_hash``
    - ``previous_hash`` links to the prior entry (genesis digest for the first)
    - ``signature`` is an HMAC of ``hash`` under the trail's signing key
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    event: AuditEvent
    previous_hash: str
    hash: str
    signature: str

    def to_record(self) -> dict[str, Any]:
        """Wire form: ``{event, previousHash, hash, signature}``."""
        return {
            "event": self.event.to_record(),
            "previousHash": self.previous_hash,
            "hash": self.hash,
            "signature": self.signature,
        }


@dataclass
class ChainState:
    """Running tip of one hash chain.

    Owned by a single AuditLogger; advanced only after the entry
    carrying ``new_hash`` has been persisted.
    """

    last_hash: str = GENESIS_HASH

    def advance(self, new_hash: str) -> None:
        self.last_hash = new_hash


class AuditQuery(BaseModel):
    """Query parameters for audit log search.

    All supplied filters must match. Time bounds are inclusive.
    """

    actor_id: str | None = None
    event_type: AuditEventType | None = None
    outcome: AuditOutcome | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


class DiscrepancyKind(str, Enum):
    """Which integrity property an entry violates."""

    CHAIN_BREAK = "chain_break"
    HASH_MISMATCH = "hash_mismatch"
    SIGNATURE_MISMATCH = "signature_mismatch"
    MALFORMED_RECORD = "malformed_record"


class IntegrityDiscrepancy(BaseModel):
    """One verification finding, tied to a storage position."""

    position: int
    kind: DiscrepancyKind
    event_id: str | None = None
    expected: str | None = None
    actual: str | None = None
    message: str


class VerificationResult(BaseModel):
    """Outcome of replaying the whole chain."""

    valid: bool
    errors: list[IntegrityDiscrepancy] = Field(default_factory=list)
    entries_checked: int = 0
    verified_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class AuditChainStatus(BaseModel):
    """Status of an audit chain."""

    total_entries: int
    last_hash: str | None
    last_event_id: str | None = None
    last_timestamp: str | None = None
    chain_valid: bool
    error_count: int = 0
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
