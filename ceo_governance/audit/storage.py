"""Audit storage backends.

Append-only storage for serialized audit entries. Backends know
nothing about hashing or signing; they only keep lines in order.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Protocol

from ceo_governance.audit.exceptions import ConfigurationError, PersistenceError

if TYPE_CHECKING:
    from ceo_governance.config import AuditSettings

logger = logging.getLogger(__name__)


class AppendOnlyStore(Protocol):
    """Protocol for audit storage backends.

    Implementations must preserve append order exactly and never
    rewrite or remove a record. ``read_all`` must not return a
    record whose write has not completed.
    """

    def append(self, record: str) -> None:
        """Durably append one serialized entry."""
        ...

    def read_all(self) -> list[str]:
        """Return every stored entry, oldest first (empty if none)."""
        ...


_SCAN_CHUNK = 64 * 1024


def _end_of_last_line(f: BinaryIO, end: int) -> int:
    """Offset just past the last newline before ``end`` (0 if none)."""
    pos = end
    while pos > 0:
        size = min(_SCAN_CHUNK, pos)
        pos -= size
        f.seek(pos)
        index = f.read(size).rfind(b"\n")
        if index != -1:
            return pos + index + 1
    return 0


class FileAppendOnlyStore:
    """JSON Lines file storage, one serialized entry per line.

    Safe for one writing process; threads inside that process are
    serialized by an internal lock. Several processes appending to the
    same file need an external single-writer arbiter.
    """

    def __init__(self, path: str | Path, fsync: bool = False):
        """Initialize file storage.

        Args:
            path: Log file location; parent directories are created.
            fsync: Force each append to disk before returning.
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.fsync = fsync
        self._lock = threading.Lock()
        logger.info("FileAppendOnlyStore initialized at %s", self.path)

    def append(self, record: str) -> None:
        """Append a record to the file.

        An unterminated trailing record left by an interrupted write is
        discarded first, so the new line never merges with torn bytes.
        """
        if "\n" in record:
            raise ValueError("Serialized audit records must be single-line")

        data = (record + "\n").encode("utf-8")
        with self._lock:
            try:
                with open(self.path, "a+b", buffering=0) as f:
                    start = self._discard_torn_tail(f)
                    try:
                        written = f.write(data)
                        if written != len(data):
                            raise OSError(
                                f"short write ({written} of {len(data)} bytes)"
                            )
                        if self.fsync:
                            os.fsync(f.fileno())
                    except OSError:
                        # Drop any torn bytes so the next line starts clean
                        f.truncate(start)
                        raise
            except OSError as exc:
                raise PersistenceError(
                    f"Failed to append audit record to {self.path}: {exc}"
                ) from exc

        logger.debug("Appended audit record: path=%s bytes=%d", self.path, len(data))

    def _discard_torn_tail(self, f: BinaryIO) -> int:
        """Truncate after the last newline; return the new file size."""
        end = f.seek(0, os.SEEK_END)
        if end == 0:
            return 0
        f.seek(end - 1)
        if f.read(1) == b"\n":
            return end

        keep = _end_of_last_line(f, end)
        logger.warning(
            "Discarding %d bytes of unterminated trailing record in %s",
            end - keep,
            self.path,
        )
        f.truncate(keep)
        return keep

    def read_all(self) -> list[str]:
        """Read every complete record in append order."""
        with self._lock:
            if not self.path.exists():
                return []
            raw = self.path.read_bytes()

        text = raw.decode("utf-8", errors="replace")
        lines = text.split("\n")
        # Last element is "" for a newline-terminated file; anything else
        # is an unfinished write and not yet part of the log.
        if lines[-1]:
            logger.warning(
                "Ignoring unterminated trailing record in %s", self.path
            )
        return [line for line in lines[:-1] if line.strip()]


class InMemoryAppendOnlyStore:
    """List-backed store for tests and ephemeral (per-tenant) trails."""

    def __init__(self) -> None:
        self._records: list[str] = []
        self._lock = threading.Lock()

    def append(self, record: str) -> None:
        with self._lock:
            self._records.append(record)

    def read_all(self) -> list[str]:
        with self._lock:
            return list(self._records)


# Factory function
def get_audit_storage(settings: AuditSettings | None = None) -> AppendOnlyStore:
    """Get audit storage instance based on configuration."""
    if settings is None:
        from ceo_governance.config import get_settings

        settings = get_settings()

    if settings.storage_type == "memory":
        return InMemoryAppendOnlyStore()
    if settings.storage_type == "file":
        return FileAppendOnlyStore(settings.log_path, fsync=settings.fsync)

    raise ConfigurationError(f"Unknown audit storage type: {settings.storage_type}")
