"""
Transfer Coordinator Module

The single orchestration point that keeps the ledger and balances
consistent. A transfer validates its inputs, writes the ledger entry and,
for payments, applies the debit and the credit, all inside one storage
transaction: either the entry and both deltas commit together or nothing
does.
"""

from decimal import Decimal
from typing import Any, Optional, Union

from .currency import Money, Currency, to_money
from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountStore
from .ledger import TransactionLedger, TransactionKind, TransactionEntry, TransactionView, coerce_kind
from .errors import (
    PeerPayError, InvalidAmount, InvalidParties, InsufficientFunds,
    IdempotencyConflict, PersistenceFailure
)
from .logging_config import get_logger, log_action


class TransferCoordinator:
    """
    Crosses the account store and the ledger. Caller identity is always an
    explicit argument; the coordinator trusts ``sender_id`` as already
    authorized.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_store: AccountStore,
        ledger: TransactionLedger,
        audit_trail: AuditTrail,
        enforce_sufficient_funds: bool = True,
        max_transaction_amount: Optional[Decimal] = None
    ):
        self.storage = storage
        self.account_store = account_store
        self.ledger = ledger
        self.audit_trail = audit_trail
        self.enforce_sufficient_funds = enforce_sufficient_funds
        self.max_transaction_amount = max_transaction_amount
        self.logger = get_logger("peerpay.transfers")

    def transfer(
        self,
        sender_id: str,
        recipient_id: str,
        amount: Any,
        kind: Union[TransactionKind, str],
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TransactionView:
        """
        Record a payment or request between two accounts

        Args:
            sender_id: Initiating account (the payer for a payment)
            recipient_id: Counterparty account
            amount: Positive amount (Money, Decimal, int or numeric string)
            kind: payment or request
            note: Optional free text
            idempotency_key: Retry key, scoped to the sender; a repeated key
                returns the first entry if it describes the same transfer

        Returns:
            The created entry with sender and recipient resolved

        Raises:
            InvalidAmount: Amount not positive, not numeric or above the limit
            InvalidParties: Same account twice, unknown account or currency mismatch
            InvalidKind: Kind is not payment or request
            InsufficientFunds: Payment exceeds the sender balance (when enforced)
            IdempotencyConflict: Key already used by this sender for another transfer
            PersistenceFailure: Storage failed; nothing was committed
        """
        try:
            kind = coerce_kind(kind)
            sender = self.account_store.get_account(sender_id) if sender_id else None
            currency = sender.currency if sender else self.account_store.default_currency
            money = self._validate_amount(amount, currency)
            self._validate_parties(sender_id, recipient_id, sender)

            with self.storage.atomic():
                if idempotency_key:
                    existing = self.ledger.find_by_idempotency_key(idempotency_key, sender_id)
                    if existing:
                        self._check_replay(existing, recipient_id, money, kind)
                        log_action(
                            self.logger, "info", "Duplicate transfer submission",
                            user_id=sender_id, action="transfer",
                            resource=f"transaction:{existing.id}",
                            extra={"idempotency_key": idempotency_key}
                        )
                        return self.ledger.resolve(existing)

                if kind == TransactionKind.PAYMENT and self.enforce_sufficient_funds:
                    balance = self.account_store.get_balance(sender_id)
                    if balance < money:
                        raise InsufficientFunds(
                            f"Insufficient funds: available {balance.to_string()}, "
                            f"requested {money.to_string()}",
                            {"available": str(balance.amount), "requested": str(money.amount)}
                        )

                entry = self.ledger.create_entry(
                    sender_id=sender_id,
                    recipient_id=recipient_id,
                    amount=money,
                    kind=kind,
                    note=note,
                    idempotency_key=idempotency_key
                )

                if kind == TransactionKind.PAYMENT:
                    self.account_store.apply_delta(sender_id, -money, reference=entry.id)
                    self.account_store.apply_delta(recipient_id, money, reference=entry.id)

                    self.audit_trail.log_event(
                        event_type=AuditEventType.TRANSFER_COMPLETED,
                        entity_type="transaction",
                        entity_id=entry.id,
                        metadata={
                            "amount": str(money.amount),
                            "sender_id": sender_id,
                            "recipient_id": recipient_id
                        },
                        user_id=sender_id
                    )

        except PeerPayError as e:
            self._record_failure(sender_id, recipient_id, amount, kind, e)
            raise
        except Exception as e:
            failure = PersistenceFailure(f"Transfer could not be committed: {e}")
            self._record_failure(sender_id, recipient_id, amount, kind, failure)
            raise failure from e

        log_action(
            self.logger, "info", f"Transfer recorded: {kind.value}",
            user_id=sender_id, action="transfer", resource=f"transaction:{entry.id}",
            extra={
                "kind": kind.value,
                "status": entry.status.value,
                "amount": money.to_string(),
                "recipient_id": recipient_id
            }
        )
        return self.ledger.resolve(entry)

    def send_money(self, sender_id: str, recipient_id: str, amount: Any,
                   note: Optional[str] = None, idempotency_key: Optional[str] = None) -> TransactionView:
        """Pay another account immediately"""
        return self.transfer(sender_id, recipient_id, amount, TransactionKind.PAYMENT,
                             note=note, idempotency_key=idempotency_key)

    def request_money(self, requester_id: str, payer_id: str, amount: Any,
                      note: Optional[str] = None, idempotency_key: Optional[str] = None) -> TransactionView:
        """Ask another account for money; the entry stays pending"""
        return self.transfer(requester_id, payer_id, amount, TransactionKind.REQUEST,
                             note=note, idempotency_key=idempotency_key)

    def _validate_amount(self, amount: Any, currency: Currency) -> Money:
        money = to_money(amount, currency)
        if not money.is_positive():
            raise InvalidAmount("Amount must be greater than zero", {"amount": str(money.amount)})

        if self.max_transaction_amount is not None and money.amount > self.max_transaction_amount:
            raise InvalidAmount(
                f"Amount exceeds the maximum of {self.max_transaction_amount}",
                {"amount": str(money.amount), "maximum": str(self.max_transaction_amount)}
            )
        return money

    def _validate_parties(self, sender_id: str, recipient_id: str, sender: Optional[Account]) -> None:
        if not sender_id or not recipient_id:
            raise InvalidParties("Sender and recipient are required")

        if sender_id == recipient_id:
            raise InvalidParties("Cannot transfer to the same account", {"account_id": sender_id})

        if sender is None:
            raise InvalidParties(f"Unknown sender account {sender_id}", {"account_id": sender_id})

        recipient = self.account_store.get_account(recipient_id)
        if recipient is None:
            raise InvalidParties(f"Unknown recipient account {recipient_id}", {"account_id": recipient_id})

        if recipient.currency != sender.currency:
            raise InvalidParties(
                "Sender and recipient accounts use different currencies",
                {"sender_currency": sender.currency.code, "recipient_currency": recipient.currency.code}
            )

    def _check_replay(self, existing: TransactionEntry, recipient_id: str,
                      money: Money, kind: TransactionKind) -> None:
        if (existing.recipient_id, existing.amount, existing.kind) != (recipient_id, money, kind):
            raise IdempotencyConflict(
                "Idempotency key was already used for a different transfer",
                {"transaction_id": existing.id}
            )

    def _record_failure(self, sender_id: str, recipient_id: str, amount: Any,
                        kind: Union[TransactionKind, str], error: PeerPayError) -> None:
        level = "error" if isinstance(error, PersistenceFailure) else "warning"
        kind_value = kind.value if isinstance(kind, TransactionKind) else str(kind)
        log_action(
            self.logger, level, f"Transfer rejected: {error.code}",
            user_id=sender_id, action="transfer",
            extra={
                "kind": kind_value,
                "amount": str(amount),
                "recipient_id": recipient_id,
                "error": error.message
            }
        )

        try:
            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_FAILED,
                entity_type="account",
                entity_id=sender_id or "",
                metadata={
                    "kind": kind_value,
                    "amount": str(amount),
                    "recipient_id": recipient_id,
                    "error": error.code
                },
                user_id=sender_id
            )
        except PersistenceFailure:
            self.logger.exception("Could not write audit event for failed transfer")
