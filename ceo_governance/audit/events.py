"""Convenience recorders for common governance events.

Pricing and scanning live outside the audit trail; their results
arrive here as plain metadata.
"""

from __future__ import annotations

from typing import Any

from ceo_governance.audit.chain import AuditLogger
from ceo_governance.audit.models import (
    AuditEvent,
    AuditEventType,
    AuditLogEntry,
    AuditOutcome,
)


def audit_login(
    audit: AuditLogger,
    user_id: str,
    *,
    success: bool = True,
    user_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    session_id: str | None = None,
) -> AuditLogEntry:
    """Record a login attempt."""
    return audit.log(
        AuditEvent(
            event_type=AuditEventType.USER_LOGIN,
            actor_id=user_id,
            actor_email=user_email,
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
            action="login",
            outcome=AuditOutcome.SUCCESS if success else AuditOutcome.FAILURE,
        )
    )


def audit_llm_request(
    audit: AuditLogger,
    user_id: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
    cost: float,
    *,
    workspace_id: str | None = None,
    request_id: str | None = None,
    cost_breakdown: dict[str, Any] | None = None,
) -> AuditLogEntry:
    """Record an LLM call with its token counts and priced cost."""
    metadata: dict[str, Any] = {
        "inputTokens": input_tokens,
        "outputTokens": output_tokens,
        "cost": cost,
    }
    if cost_breakdown:
        metadata["costBreakdown"] = cost_breakdown

    return audit.log(
        AuditEvent(
            event_type=AuditEventType.LLM_REQUEST,
            actor_id=user_id,
            workspace_id=workspace_id,
            request_id=request_id,
            resource=model,
            action="chat.completion",
            outcome=AuditOutcome.SUCCESS,
            metadata=metadata,
        )
    )


def audit_security_violation(
    audit: AuditLogger,
    user_id: str,
    violation_type: str,
    risk_level: str,
    *,
    resource: str = "prompt",
    affected_text: str | None = None,
    findings: list[dict[str, Any]] | None = None,
    contains_pii: bool | None = None,
) -> AuditLogEntry:
    """Record a blocked action flagged by the pattern scanner."""
    metadata: dict[str, Any] = {
        "violationType": violation_type,
        "riskLevel": risk_level,
    }
    if affected_text is not None:
        # Keep excerpts short; the log is append-only
        metadata["affectedText"] = affected_text[:200]
    if findings:
        metadata["findings"] = findings

    return audit.log(
        AuditEvent(
            event_type=AuditEventType.SECURITY_VIOLATION,
            actor_id=user_id,
            resource=resource,
            action=f"{violation_type}_attempt",
            outcome=AuditOutcome.DENIED,
            metadata=metadata,
            contains_pii=contains_pii,
        )
    )
