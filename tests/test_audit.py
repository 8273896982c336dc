"""
Test suite for audit module

Tests hash chaining, tamper detection and that audit events commit or roll
back together with the unit of work that produced them.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from peerpay.storage import InMemoryStorage, SQLiteStorage
from peerpay.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Decimal, datetime and enum metadata become JSON-friendly values"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            sequence=1,
            event_type=AuditEventType.BALANCE_ADJUSTED,
            entity_type="account",
            entity_id="alice",
            previous_hash="",
            current_hash="",
            metadata={
                "delta": Decimal('-25.00'),
                "at": now,
                "kind": AuditEventType.TRANSFER_COMPLETED,
                "nested": {"values": [Decimal('1.10')]}
            }
        )

        assert event.metadata["delta"] == "-25.00"
        assert event.metadata["at"] == now.isoformat()
        assert event.metadata["kind"] == "transfer_completed"
        assert event.metadata["nested"] == {"values": ["1.10"]}

    def test_hash_covers_metadata(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT002",
            created_at=now,
            updated_at=now,
            sequence=1,
            event_type=AuditEventType.ACCOUNT_OPENED,
            entity_type="account",
            entity_id="alice",
            previous_hash="",
            current_hash="",
            metadata={"opening_balance": "50.00"}
        )
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.metadata["opening_balance"] = "5000.00"
        assert not event.verify_hash()

    def test_dict_round_trip(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT003",
            created_at=now,
            updated_at=now,
            sequence=7,
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id="tx1",
            previous_hash="abc",
            current_hash="",
            metadata={"kind": "payment"},
            user_id="alice"
        )
        event.current_hash = event.calculate_hash()

        restored = AuditEvent.from_dict(event.to_dict())
        assert restored.event_type == AuditEventType.TRANSACTION_CREATED
        assert restored.sequence == 7
        assert restored.verify_hash()


class TestAuditTrail:
    """Test the hash-chained trail"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)

    def test_events_are_chained(self):
        first = self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "alice")
        second = self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "bob")

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash

    def test_verify_integrity_of_valid_chain(self):
        for index in range(5):
            self.audit.log_event(
                AuditEventType.BALANCE_ADJUSTED, "account", "alice",
                metadata={"delta": str(index)}
            )

        result = self.audit.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 5
        assert result['hash_errors'] == []
        assert result['chain_breaks'] == []

    def test_tampered_event_is_detected(self):
        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "alice",
                             metadata={"opening_balance": "10.00"})
        event = self.audit.log_event(AuditEventType.BALANCE_ADJUSTED, "account", "alice",
                                     metadata={"delta": "5.00"})

        stored = self.storage.load("audit_events", event.id)
        stored['metadata']['delta'] = "5000.00"
        self.storage.save("audit_events", event.id, stored)

        result = self.audit.verify_integrity()
        assert not result['valid']
        assert len(result['hash_errors']) == 1
        assert result['hash_errors'][0]['event_id'] == event.id

    def test_deleted_event_breaks_chain(self):
        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "alice")
        middle = self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "bob")
        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "carol")

        remaining = [e for e in self.storage.load_all("audit_events") if e['id'] != middle.id]
        self.storage.clear_table("audit_events")
        for data in remaining:
            self.storage.save("audit_events", data['id'], data)

        result = self.audit.verify_integrity()
        assert not result['valid']
        assert len(result['chain_breaks']) == 1

    def test_queries_by_entity_and_type(self):
        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "alice")
        self.audit.log_event(AuditEventType.BALANCE_ADJUSTED, "account", "alice")
        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "bob")

        alice_events = self.audit.get_events_for_entity("account", "alice")
        assert [e.event_type for e in alice_events] == [
            AuditEventType.ACCOUNT_OPENED, AuditEventType.BALANCE_ADJUSTED
        ]
        assert len(self.audit.get_events_by_type(AuditEventType.ACCOUNT_OPENED)) == 2
        assert self.audit.count_events() == 3

    def test_disabled_trail_writes_nothing(self):
        audit = AuditTrail(self.storage, enabled=False)

        assert audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "alice") is None
        assert audit.count_events() == 0

    def test_rolled_back_events_leave_chain_valid(self):
        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "alice")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit.log_event(AuditEventType.TRANSACTION_CREATED, "transaction", "tx1")
                raise RuntimeError("rolled back")

        after = self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "bob")

        assert after.sequence == 2
        assert self.audit.verify_integrity()['valid']


class TestAuditTrailSQLite:
    """Audit chain on the SQLite backend"""

    def setup_method(self):
        self.storage = SQLiteStorage(":memory:")
        self.audit = AuditTrail(self.storage)

    def teardown_method(self):
        self.storage.close()

    def test_chain_survives_rollback(self):
        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "alice")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit.log_event(AuditEventType.BALANCE_ADJUSTED, "account", "alice")
                raise RuntimeError("rolled back")

        self.audit.log_event(AuditEventType.ACCOUNT_OPENED, "account", "bob")

        result = self.audit.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 2
