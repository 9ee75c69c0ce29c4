"""Audit trail errors.

Tampering is not an error here: the verifier reports it as
IntegrityDiscrepancy findings. These exceptions cover bad input,
failed writes, unreadable records and bad configuration.
"""


class AuditError(Exception):
    """Base class for audit trail failures."""

    def __init__(self, message: str, code: str = "audit_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(AuditError):
    """Raised when an event is rejected before any hashing or writing."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_event")


class PersistenceError(AuditError):
    """Raised when the store could not durably append a record."""

    def __init__(self, message: str):
        super().__init__(message, "persistence_failed")


class MalformedRecordError(AuditError):
    """Raised when a stored record cannot be decoded at all."""

    def __init__(self, position: int, reason: str):
        self.position = position
        super().__init__(
            f"Malformed audit record at position {position}: {reason}",
            "malformed_record",
        )


class ConfigurationError(AuditError):
    """Raised for invalid audit configuration (e.g. missing signing key)."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_configuration")
