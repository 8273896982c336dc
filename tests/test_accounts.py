"""
Test suite for the account store

Balances change only through apply_delta, which is pure atomic addition.
"""

import pytest
import threading
from decimal import Decimal

from peerpay.storage import InMemoryStorage, SQLiteStorage
from peerpay.audit import AuditTrail, AuditEventType
from peerpay.currency import Money, Currency
from peerpay.accounts import AccountStore
from peerpay.errors import AccountExists, InvalidAmount, NotFound


class TestAccountStore:
    """Test opening accounts and reading balances"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.store = AccountStore(self.storage, self.audit)

    def test_open_account(self):
        account = self.store.open_account("alice", Decimal('50.00'))

        assert account.id == "alice"
        assert account.currency == Currency.USD
        assert self.store.get_balance("alice") == Money(Decimal('50.00'), Currency.USD)
        assert self.store.account_exists("alice")

    def test_open_account_defaults_to_zero(self):
        self.store.open_account("alice")
        assert self.store.get_balance("alice").is_zero()

    def test_open_account_in_other_currency(self):
        account = self.store.open_account("pierre", "10", currency=Currency.EUR)
        assert account.balance == Money(Decimal('10'), Currency.EUR)

    def test_duplicate_account_rejected(self):
        self.store.open_account("alice", 10)

        with pytest.raises(AccountExists):
            self.store.open_account("alice", 99)
        assert self.store.get_balance("alice").amount == Decimal('10.00')

    def test_negative_opening_balance_rejected(self):
        with pytest.raises(InvalidAmount):
            self.store.open_account("alice", -5)
        assert not self.store.account_exists("alice")

    def test_non_numeric_opening_balance_rejected(self):
        with pytest.raises(InvalidAmount):
            self.store.open_account("alice", "lots")

    def test_empty_account_id_rejected(self):
        with pytest.raises(ValueError):
            self.store.open_account("")

    def test_get_balance_unknown_account(self):
        with pytest.raises(NotFound):
            self.store.get_balance("ghost")
        assert self.store.get_account("ghost") is None

    def test_opening_is_audited(self):
        self.store.open_account("alice", 50)

        events = self.audit.get_events_for_entity("account", "alice")
        assert [e.event_type for e in events] == [AuditEventType.ACCOUNT_OPENED]
        assert events[0].metadata["opening_balance"] == "50.00"


class TestApplyDelta:
    """Test atomic balance adjustment"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.store = AccountStore(self.storage, self.audit)
        self.store.open_account("alice", Decimal('50.00'))

    def test_credit_and_debit(self):
        assert self.store.apply_delta("alice", Money(Decimal('25'), Currency.USD)).amount == Decimal('75.00')
        assert self.store.apply_delta("alice", Money(Decimal('-30'), Currency.USD)).amount == Decimal('45.00')
        assert self.store.get_balance("alice").amount == Decimal('45.00')

    def test_no_floor_at_zero(self):
        new_balance = self.store.apply_delta("alice", Money(Decimal('-80'), Currency.USD))
        assert new_balance.amount == Decimal('-30.00')

    def test_unknown_account(self):
        with pytest.raises(NotFound):
            self.store.apply_delta("ghost", Money(Decimal('1'), Currency.USD))

    def test_currency_mismatch(self):
        with pytest.raises(ValueError):
            self.store.apply_delta("alice", Money(Decimal('1'), Currency.EUR))
        assert self.store.get_balance("alice").amount == Decimal('50.00')

    def test_adjustment_is_audited_with_reference(self):
        self.store.apply_delta("alice", Money(Decimal('-5'), Currency.USD), reference="tx-1")

        adjustments = self.audit.get_events_by_type(AuditEventType.BALANCE_ADJUSTED)
        assert len(adjustments) == 1
        assert adjustments[0].metadata == {
            "delta": "-5.00",
            "previous_balance": "50.00",
            "new_balance": "45.00",
            "reference": "tx-1"
        }

    def test_adjustment_rolls_back_with_enclosing_unit(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.store.apply_delta("alice", Money(Decimal('-50'), Currency.USD))
                raise RuntimeError("later step failed")

        assert self.store.get_balance("alice").amount == Decimal('50.00')


class TestConcurrentDeltas:
    """Concurrent adjustments to one account never lose updates"""

    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_no_lost_updates(self, backend, tmp_path):
        storage = InMemoryStorage() if backend == "memory" else SQLiteStorage(tmp_path / "deltas.db")
        store = AccountStore(storage, AuditTrail(storage, enabled=False))
        store.open_account("alice", 0)

        def credit():
            for _ in range(10):
                store.apply_delta("alice", Money(Decimal('1'), Currency.USD))

        threads = [threading.Thread(target=credit) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.get_balance("alice").amount == Decimal('80.00')
        storage.close()
