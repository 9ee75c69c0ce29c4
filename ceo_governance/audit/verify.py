"""Audit chain verification.

Replays the stored sequence and reports every place where the
chain, a hash or a signature does not hold up.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ceo_governance.audit.exceptions import ConfigurationError, ValidationError
from ceo_governance.audit.integrity import GENESIS_HASH, compute_hash, signature_matches
from ceo_governance.audit.models import (
    AuditChainStatus,
    DiscrepancyKind,
    IntegrityDiscrepancy,
    VerificationResult,
)
from ceo_governance.audit.storage import AppendOnlyStore

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("previousHash", "hash", "signature")


def parse_record(record: str) -> tuple[dict[str, Any] | None, str | None]:
    """Parse a stored line into its raw dict, or explain why it can't be."""
    try:
        data = json.loads(record)
    except json.JSONDecodeError as exc:
        return None, f"invalid JSON ({exc.msg} at column {exc.colno})"

    if not isinstance(data, dict):
        return None, "record is not a JSON object"
    if not isinstance(data.get("event"), dict):
        return None, "missing or invalid 'event'"
    for name in _REQUIRED_FIELDS:
        if not isinstance(data.get(name), str):
            return None, f"missing or invalid '{name}'"
    return data, None


class Verifier:
    """Verifies integrity of a stored audit chain.

    For each entry, in storage order:
    1. ``previousHash`` must equal the prior entry's stored ``hash``
       (genesis digest for the first entry)
    2. ``hash`` must equal the hash recomputed from event + previousHash
    3. ``signature`` must equal the HMAC of the stored ``hash``

    Verification continues past failures so one run pinpoints every
    altered entry. The store is only ever read.
    """

    def __init__(self, store: AppendOnlyStore, signing_key: str | bytes):
        if not signing_key:
            raise ConfigurationError("Verifier requires a non-empty signing key")
        self.store = store
        self._signing_key = signing_key

    def verify(self) -> VerificationResult:
        """Verify the whole stored chain."""
        return self._verify_records(self.store.read_all())

    def status(self) -> AuditChainStatus:
        """Verify the chain and summarize its tip.

        Works on logs a writer would refuse to open: an unreadable last
        record shows up as ``last_hash=None`` and ``chain_valid=False``.
        """
        records = self.store.read_all()
        result = self._verify_records(records)

        last_hash: str | None = GENESIS_HASH
        last_event_id = None
        last_timestamp = None
        if records:
            last, _ = parse_record(records[-1])
            last_hash = None
            if last is not None:
                last_hash = last["hash"]
                last_event_id = last["event"].get("id")
                last_timestamp = last["event"].get("timestamp")

        return AuditChainStatus(
            total_entries=result.entries_checked,
            last_hash=last_hash,
            last_event_id=last_event_id,
            last_timestamp=last_timestamp,
            chain_valid=result.valid,
            error_count=len(result.errors),
        )

    def _verify_records(self, records: list[str]) -> VerificationResult:
        errors: list[IntegrityDiscrepancy] = []
        expected: str | None = GENESIS_HASH

        for position, record in enumerate(records):
            data, reason = parse_record(record)
            if data is None:
                errors.append(
                    IntegrityDiscrepancy(
                        position=position,
                        kind=DiscrepancyKind.MALFORMED_RECORD,
                        message=f"Entry {position}: malformed record, {reason}",
                    )
                )
                # Successor's link can't be checked against an unreadable hash
                expected = None
                continue

            errors.extend(self._check_entry(position, data, expected))
            expected = data["hash"]

        for error in errors:
            logger.warning("Audit integrity discrepancy: %s", error.message)

        result = VerificationResult(
            valid=not errors,
            errors=errors,
            entries_checked=len(records),
        )
        logger.info(
            "Audit chain verification %s: entries=%d discrepancies=%d",
            "passed" if result.valid else "FAILED",
            len(records),
            len(errors),
        )
        return result

    def _check_entry(
        self, position: int, data: dict[str, Any], expected: str | None
    ) -> list[IntegrityDiscrepancy]:
        errors: list[IntegrityDiscrepancy] = []
        event = data["event"]
        event_id = event.get("id") if isinstance(event.get("id"), str) else None
        label = f"Entry {position} ({event_id})" if event_id else f"Entry {position}"
        previous_hash = data["previousHash"]
        stored_hash = data["hash"]

        if expected is not None and previous_hash != expected:
            errors.append(
                IntegrityDiscrepancy(
                    position=position,
                    kind=DiscrepancyKind.CHAIN_BREAK,
                    event_id=event_id,
                    expected=expected,
                    actual=previous_hash,
                    message=(
                        f"{label}: chain broken. Expected previous hash "
                        f"{expected}, got {previous_hash}"
                    ),
                )
            )

        try:
            computed = compute_hash(event, previous_hash)
        except ValidationError as exc:
            computed = None
            errors.append(
                IntegrityDiscrepancy(
                    position=position,
                    kind=DiscrepancyKind.MALFORMED_RECORD,
                    event_id=event_id,
                    message=f"{label}: event cannot be re-hashed, {exc.message}",
                )
            )
        if computed is not None and computed != stored_hash:
            errors.append(
                IntegrityDiscrepancy(
                    position=position,
                    kind=DiscrepancyKind.HASH_MISMATCH,
                    event_id=event_id,
                    expected=computed,
                    actual=stored_hash,
                    message=(
                        f"{label}: hash mismatch. Expected {computed}, "
                        f"got {stored_hash}"
                    ),
                )
            )

        if not signature_matches(self._signing_key, stored_hash, data["signature"]):
            errors.append(
                IntegrityDiscrepancy(
                    position=position,
                    kind=DiscrepancyKind.SIGNATURE_MISMATCH,
                    event_id=event_id,
                    actual=data["signature"],
                    message=f"{label}: signature invalid",
                )
            )

        return errors
