"""Hashing and signing for the audit chain.

Pure functions; the chain and verifier share them so that a hash
computed at write time is reproduced bit for bit at verify time.
"""

import hashlib
import hmac
import json
from typing import Any

from ceo_governance.audit.exceptions import ValidationError

HASH_ALGORITHM = "sha256"

# previousHash of the first entry in every chain
GENESIS_HASH = hashlib.sha256(b"GENESIS").hexdigest()


def canonicalize(event: dict[str, Any], previous_hash: str) -> bytes:
    """Deterministic bytes for an event linked to its predecessor.

    Sorted keys, compact separators, UTF-8. ``event`` must be the wire
    form of the event (as persisted), not the Python model.

    Raises:
        ValidationError: the content has no canonical form (non-JSON
            values, NaN, or strings that are not valid Unicode).
    """
    content = {"event": event, "previousHash": previous_hash}
    try:
        return json.dumps(
            content,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Event is not JSON-serializable: {exc}") from exc


def compute_hash(event: dict[str, Any], previous_hash: str) -> str:
    """SHA-256 hex digest of the canonical event + previous hash."""
    return hashlib.sha256(canonicalize(event, previous_hash)).hexdigest()


def _key_bytes(key: str | bytes) -> bytes:
    return key.encode("utf-8") if isinstance(key, str) else key


def sign(key: str | bytes, entry_hash: str) -> str:
    """HMAC-SHA256 hex signature over an entry hash."""
    return hmac.new(
        _key_bytes(key), entry_hash.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def signature_matches(key: str | bytes, entry_hash: str, signature: str) -> bool:
    """Constant-time check of a stored signature."""
    try:
        expected = sign(key, entry_hash).encode("ascii")
        actual = signature.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates can't be a signature we produced
        return False
    # bytes, so a non-ASCII forged value compares unequal instead of raising
    return hmac.compare_digest(expected, actual)
