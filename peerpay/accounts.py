"""
Account Store Module

Durable per-user balances. The store's contract is pure atomic addition:
``apply_delta`` adds a signed amount under the storage lock and returns the
new balance. Business policy such as "insufficient funds" belongs to the
caller, which checks a balance snapshot inside the same atomic unit.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, Optional, Any

from .currency import Money, Currency, to_money
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import AccountExists, InvalidAmount, NotFound
from .logging_config import get_logger, log_action


@dataclass
class Account(StorageRecord):
    """
    A user's balance holder. The id is the user id issued at signup.
    """
    balance: Money
    currency: Currency

    def __post_init__(self):
        if self.balance.currency != self.currency:
            raise ValueError("Balance currency must match account currency")


class AccountStore:
    """
    Owns balance values. Nothing else writes the accounts table.
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        default_currency: Currency = Currency.USD
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.default_currency = default_currency
        self.table_name = "accounts"
        self.logger = get_logger("peerpay.accounts")

    def open_account(
        self,
        account_id: str,
        opening_balance: Any = Decimal('0'),
        currency: Optional[Currency] = None
    ) -> Account:
        """
        Create the balance record for a newly signed-up user

        Args:
            account_id: User id from the auth provider
            opening_balance: Starting balance, must not be negative
            currency: Account currency (defaults to the store currency)

        Returns:
            Created Account

        Raises:
            AccountExists: If the id is already taken
            InvalidAmount: If the opening balance is negative or non-numeric
        """
        if not account_id:
            raise ValueError("Account id is required")

        currency = currency or self.default_currency
        balance = to_money(opening_balance, currency)
        if balance.is_negative():
            raise InvalidAmount("Opening balance cannot be negative",
                                {"opening_balance": str(balance.amount)})

        with self.storage.atomic():
            if self.storage.exists(self.table_name, account_id):
                raise AccountExists(f"Account {account_id} already exists",
                                    {"account_id": account_id})

            now = datetime.now(timezone.utc)
            account = Account(
                id=account_id,
                created_at=now,
                updated_at=now,
                balance=balance,
                currency=currency
            )
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_OPENED,
                entity_type="account",
                entity_id=account_id,
                metadata={
                    "currency": currency.code,
                    "opening_balance": str(balance.amount)
                },
                user_id=account_id
            )

        log_action(
            self.logger, "info", "Account opened",
            user_id=account_id, action="open_account", resource=f"account:{account_id}",
            extra={"opening_balance": balance.to_string()}
        )
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        data = self.storage.load(self.table_name, account_id)
        if data:
            return self._account_from_dict(data)
        return None

    def account_exists(self, account_id: str) -> bool:
        return self.storage.exists(self.table_name, account_id)

    def get_balance(self, account_id: str) -> Money:
        """
        Current balance, read fresh from storage

        Raises:
            NotFound: If no such account
        """
        account = self.get_account(account_id)
        if not account:
            raise NotFound(f"Account {account_id} not found", {"account_id": account_id})
        return account.balance

    def apply_delta(self, account_id: str, delta: Money, reference: Optional[str] = None) -> Money:
        """
        Atomically add a signed delta to the stored balance

        Args:
            account_id: Account to adjust
            delta: Positive (credit) or negative (debit) amount
            reference: Ledger entry id the adjustment belongs to

        Returns:
            New balance

        Raises:
            NotFound: If no such account
        """
        with self.storage.atomic():
            account = self.get_account(account_id)
            if not account:
                raise NotFound(f"Account {account_id} not found", {"account_id": account_id})

            if delta.currency != account.currency:
                raise ValueError(
                    f"Delta currency {delta.currency.code} does not match "
                    f"account currency {account.currency.code}"
                )

            previous = account.balance
            account.balance = previous + delta
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.BALANCE_ADJUSTED,
                entity_type="account",
                entity_id=account_id,
                metadata={
                    "delta": str(delta.amount),
                    "previous_balance": str(previous.amount),
                    "new_balance": str(account.balance.amount),
                    "reference": reference
                }
            )

        return account.balance

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.table_name, account.id, self._account_to_dict(account))

    def _account_to_dict(self, account: Account) -> Dict:
        result = account.to_dict()
        result['balance'] = str(account.balance.amount)
        result['currency'] = account.currency.code
        return result

    def _account_from_dict(self, data: Dict) -> Account:
        currency = Currency[data['currency']]
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            balance=Money(Decimal(data['balance']), currency),
            currency=currency
        )
