"""Tests for audit chain verification and tamper detection."""

import json

import pytest

from ceo_governance.audit import (
    GENESIS_HASH,
    AuditEvent,
    AuditEventType,
    AuditLogger,
    AuditOutcome,
    ConfigurationError,
    DiscrepancyKind,
    FileAppendOnlyStore,
    InMemoryAppendOnlyStore,
    Verifier,
    compute_hash,
    sign,
)

SIGNING_KEY = "test-signing-key"


def kinds_at(result, position):
    return [e.kind for e in result.errors if e.position == position]


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "audit.log"


@pytest.fixture
def store(log_path):
    return FileAppendOnlyStore(log_path)


@pytest.fixture
def populated(store):
    """A valid chain of four entries."""
    audit = AuditLogger(store, SIGNING_KEY)
    for i in range(4):
        audit.log(
            AuditEvent(
                event_type=AuditEventType.DATA_WRITE,
                actor_id="user@test.com",
                action=f"Create item {i}",
                outcome=AuditOutcome.SUCCESS,
                metadata={"item": i},
            )
        )
    return audit


def read_lines(path):
    return path.read_text(encoding="utf-8").splitlines()


def write_lines(path, lines):
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")


class TestValidChains:
    """Test verification of untouched logs."""

    def test_empty_store_is_valid(self, store):
        result = Verifier(store, SIGNING_KEY).verify()

        assert result.valid
        assert result.errors == []
        assert result.entries_checked == 0

    def test_fresh_chain_is_valid(self, populated):
        result = populated.verify()

        assert result.valid
        assert result.entries_checked == 4

    def test_verification_does_not_modify_store(self, populated, log_path):
        before = log_path.read_bytes()
        Verifier(populated.store, SIGNING_KEY).verify()
        assert log_path.read_bytes() == before

    def test_empty_key_is_configuration_error(self, store):
        with pytest.raises(ConfigurationError):
            Verifier(store, "")


class TestTamperDetection:
    """Test that retroactive edits are reported with their position."""

    def test_edited_event_reports_hash_mismatch(self, populated, log_path):
        lines = read_lines(log_path)
        record = json.loads(lines[1])
        record["event"]["action"] = "TAMPERED ACTION"
        lines[1] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()

        assert not result.valid
        assert kinds_at(result, 1) == [DiscrepancyKind.HASH_MISMATCH]
        # Stored hash untouched, so the successor still links to it
        assert kinds_at(result, 2) == []

    def test_single_byte_change_detected(self, populated, log_path):
        raw = log_path.read_bytes()
        lines = raw.split(b"\n")
        target = lines[2]
        index = target.index(b"Create item 2") + len(b"Create item ")
        lines[2] = target[:index] + b"9" + target[index + 1:]
        log_path.write_bytes(b"\n".join(lines))

        result = populated.verify()

        assert not result.valid
        assert DiscrepancyKind.HASH_MISMATCH in kinds_at(result, 2)

    def test_rehashed_edit_breaks_signature_and_chain(self, populated, log_path):
        """Recomputing the hash after an edit still can't forge the signature."""
        lines = read_lines(log_path)
        record = json.loads(lines[1])
        record["event"]["metadata"]["item"] = 99
        record["hash"] = compute_hash(record["event"], record["previousHash"])
        lines[1] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()

        assert kinds_at(result, 1) == [DiscrepancyKind.SIGNATURE_MISMATCH]
        assert kinds_at(result, 2) == [DiscrepancyKind.CHAIN_BREAK]
        chain_break = result.errors[-1]
        assert chain_break.actual != chain_break.expected
        assert chain_break.expected == record["hash"]

    def test_deleted_entry_breaks_chain(self, populated, log_path):
        lines = read_lines(log_path)
        del lines[1]
        write_lines(log_path, lines)

        result = populated.verify()

        assert not result.valid
        assert [(e.position, e.kind) for e in result.errors] == [
            (1, DiscrepancyKind.CHAIN_BREAK)
        ]

    def test_reordered_entries_break_chain(self, populated, log_path):
        lines = read_lines(log_path)
        lines[1], lines[2] = lines[2], lines[1]
        write_lines(log_path, lines)

        result = populated.verify()

        assert kinds_at(result, 1) == [DiscrepancyKind.CHAIN_BREAK]
        assert kinds_at(result, 2) == [DiscrepancyKind.CHAIN_BREAK]
        assert kinds_at(result, 3) == [DiscrepancyKind.CHAIN_BREAK]

    def test_every_break_reported_in_order(self, populated, log_path):
        lines = read_lines(log_path)
        for index in (0, 3):
            record = json.loads(lines[index])
            record["event"]["actorId"] = "intruder"
            lines[index] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()

        assert [e.position for e in result.errors] == [0, 3]
        assert all(e.kind == DiscrepancyKind.HASH_MISMATCH for e in result.errors)
        assert result.errors[0].event_id is not None

    def test_forged_signature_with_other_key(self, populated, log_path):
        """Correct hash but a signature under another key: only the signature fails."""
        lines = read_lines(log_path)
        record = json.loads(lines[2])
        record["signature"] = sign("attacker-key", record["hash"])
        lines[2] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()

        assert not result.valid
        assert [(e.position, e.kind) for e in result.errors] == [
            (2, DiscrepancyKind.SIGNATURE_MISMATCH)
        ]

    def test_wrong_verification_key_fails_every_signature(self, populated):
        result = Verifier(populated.store, "another-key").verify()

        assert not result.valid
        assert len(result.errors) == 4
        assert {e.kind for e in result.errors} == {DiscrepancyKind.SIGNATURE_MISMATCH}

    def test_non_ascii_signature_reported_not_raised(self, populated, log_path):
        lines = read_lines(log_path)
        record = json.loads(lines[0])
        record["signature"] = "é" * 64
        lines[0] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()
        assert kinds_at(result, 0) == [DiscrepancyKind.SIGNATURE_MISMATCH]

    def test_invalid_unicode_signature_reported_not_raised(self, populated, log_path):
        lines = read_lines(log_path)
        record = json.loads(lines[1])
        record["signature"] = "\ud800"
        lines[1] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()
        assert [(e.position, e.kind) for e in result.errors] == [
            (1, DiscrepancyKind.SIGNATURE_MISMATCH)
        ]

    def test_invalid_unicode_in_event_reported_not_raised(self, populated, log_path):
        """A lone surrogate can't be re-hashed; it is a malformed record."""
        lines = read_lines(log_path)
        record = json.loads(lines[2])
        record["event"]["actorId"] = "\ud800"
        lines[2] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()
        assert [(e.position, e.kind) for e in result.errors] == [
            (2, DiscrepancyKind.MALFORMED_RECORD)
        ]


class TestMalformedRecords:
    """Test records that cannot be decoded at all."""

    def test_garbage_line_reported_and_scan_continues(self, populated, log_path):
        lines = read_lines(log_path)
        lines[1] = "{this is not json"
        write_lines(log_path, lines)

        result = populated.verify()

        assert not result.valid
        assert [(e.position, e.kind) for e in result.errors] == [
            (1, DiscrepancyKind.MALFORMED_RECORD)
        ]
        assert result.entries_checked == 4

    def test_missing_chain_fields_are_malformed(self, populated, log_path):
        lines = read_lines(log_path)
        record = json.loads(lines[3])
        del record["signature"]
        lines[3] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()
        assert kinds_at(result, 3) == [DiscrepancyKind.MALFORMED_RECORD]

    def test_non_object_record_is_malformed(self):
        store = InMemoryAppendOnlyStore()
        store.append("[1, 2, 3]")

        result = Verifier(store, SIGNING_KEY).verify()
        assert [(e.position, e.kind) for e in result.errors] == [
            (0, DiscrepancyKind.MALFORMED_RECORD)
        ]

    def test_records_after_malformed_still_checked(self, populated, log_path):
        lines = read_lines(log_path)
        lines[1] = "garbage"
        record = json.loads(lines[2])
        record["event"]["action"] = "edited"
        lines[2] = json.dumps(record)
        write_lines(log_path, lines)

        result = populated.verify()

        assert kinds_at(result, 1) == [DiscrepancyKind.MALFORMED_RECORD]
        assert kinds_at(result, 2) == [DiscrepancyKind.HASH_MISMATCH]


class TestStatus:
    """Test the chain summary, including logs a writer can't extend."""

    def test_status_of_valid_chain(self, populated):
        status = Verifier(populated.store, SIGNING_KEY).status()

        assert status.chain_valid
        assert status.total_entries == 4
        assert status.last_hash == populated.last_hash

    def test_status_of_empty_chain(self):
        status = Verifier(InMemoryAppendOnlyStore(), SIGNING_KEY).status()

        assert status.chain_valid
        assert status.total_entries == 0
        assert status.last_hash == GENESIS_HASH

    def test_status_with_unreadable_tip(self, populated, log_path):
        lines = read_lines(log_path)
        lines[3] = "{broken"
        write_lines(log_path, lines)

        status = Verifier(populated.store, SIGNING_KEY).status()

        assert not status.chain_valid
        assert status.total_entries == 4
        assert status.error_count == 1
        assert status.last_hash is None
        assert status.last_event_id is None
