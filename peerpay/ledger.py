"""
Transaction Ledger Module

Append-only record of payment and request events between two accounts.
Entries are immutable once written: a payment is born ``completed`` and a
request is born ``pending``. History reads resolve sender and recipient ids
into party display records at read time.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Any, Union
from enum import Enum
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .profiles import PartyRecord, ProfileProvider
from .errors import InvalidAmount, InvalidParties, InvalidKind
from .logging_config import get_logger


class TransactionKind(Enum):
    """Kinds of ledger entries"""
    PAYMENT = "payment"  # Moves balance on creation
    REQUEST = "request"  # Solicits funds, no balance effect


class TransactionStatus(Enum):
    """Status of a ledger entry"""
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


INITIAL_STATUS = {
    TransactionKind.PAYMENT: TransactionStatus.COMPLETED,
    TransactionKind.REQUEST: TransactionStatus.PENDING,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_kind(kind: Union[TransactionKind, str]) -> TransactionKind:
    try:
        return TransactionKind(kind)
    except ValueError:
        raise InvalidKind(f"Unknown transaction kind {kind!r}", {"kind": str(kind)})


@dataclass
class TransactionEntry(StorageRecord):
    """
    One recorded payment or request. The amount is always positive;
    direction comes from the sender/recipient roles.
    """
    sender_id: str
    recipient_id: str
    amount: Money
    kind: TransactionKind
    status: TransactionStatus
    note: Optional[str] = None
    idempotency_key: Optional[str] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise InvalidAmount("Transaction amount must be positive",
                                {"amount": str(self.amount.amount)})
        if self.sender_id == self.recipient_id:
            raise InvalidParties("Sender and recipient must differ",
                                 {"account_id": self.sender_id})

    @property
    def is_payment(self) -> bool:
        return self.kind == TransactionKind.PAYMENT

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    def involves(self, account_id: str) -> bool:
        return account_id in (self.sender_id, self.recipient_id)


@dataclass(frozen=True)
class TransactionView:
    """A ledger entry with both parties resolved for display"""
    entry: TransactionEntry
    sender: PartyRecord
    recipient: PartyRecord

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def status(self) -> TransactionStatus:
        return self.entry.status

    def to_dict(self) -> Dict[str, Any]:
        entry = self.entry
        return {
            "id": entry.id,
            "amount": str(entry.amount.amount),
            "currency": entry.amount.currency.code,
            "type": entry.kind.value,
            "status": entry.status.value,
            "date": entry.created_at.isoformat(),
            "note": entry.note,
            "sender": self.sender.to_dict(),
            "recipient": self.recipient.to_dict(),
        }


class TransactionLedger:
    """
    Owns transaction entries. Nothing else writes the transactions table.
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        profiles: ProfileProvider,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.profiles = profiles
        self.clock = clock
        self.table_name = "transactions"
        self.logger = get_logger("peerpay.ledger")

    def create_entry(
        self,
        sender_id: str,
        recipient_id: str,
        amount: Money,
        kind: Union[TransactionKind, str],
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TransactionEntry:
        """
        Append a new entry

        Args:
            sender_id: Account the money comes from
            recipient_id: Account the money goes to
            amount: Positive amount
            kind: payment or request
            note: Optional free text
            idempotency_key: Caller-supplied retry key

        Returns:
            Created TransactionEntry with status set by kind

        Raises:
            InvalidAmount: If amount <= 0
            InvalidParties: If sender equals recipient
            InvalidKind: If kind is not payment or request
        """
        kind = coerce_kind(kind)
        now = self.clock()

        entry = TransactionEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            sender_id=sender_id,
            recipient_id=recipient_id,
            amount=amount,
            kind=kind,
            status=INITIAL_STATUS[kind],
            note=note or None,
            idempotency_key=idempotency_key
        )

        with self.storage.atomic():
            self.storage.save(self.table_name, entry.id, self._entry_to_dict(entry))

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_CREATED,
                entity_type="transaction",
                entity_id=entry.id,
                metadata={
                    "kind": kind.value,
                    "status": entry.status.value,
                    "amount": str(amount.amount),
                    "currency": amount.currency.code,
                    "sender_id": sender_id,
                    "recipient_id": recipient_id
                },
                user_id=sender_id if kind == TransactionKind.PAYMENT else recipient_id
            )

        return entry

    def get_entry(self, entry_id: str) -> Optional[TransactionEntry]:
        data = self.storage.load(self.table_name, entry_id)
        if data:
            return self._entry_from_dict(data)
        return None

    def find_by_idempotency_key(self, idempotency_key: str, sender_id: str) -> Optional[TransactionEntry]:
        """Keys are scoped to the sender that submitted them"""
        entries = self.storage.find(
            self.table_name, {"idempotency_key": idempotency_key, "sender_id": sender_id}
        )
        if entries:
            return self._entry_from_dict(entries[0])
        return None

    def list_entries_for_account(self, account_id: str) -> List[TransactionEntry]:
        """
        Raw entries where the account is sender or recipient,
        newest first (ties broken by id, descending)
        """
        as_sender = self.storage.find(self.table_name, {"sender_id": account_id})
        as_recipient = self.storage.find(self.table_name, {"recipient_id": account_id})

        entries = [self._entry_from_dict(data) for data in as_sender + as_recipient]
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return entries

    def list_for_user(self, account_id: str, limit: Optional[int] = None) -> List[TransactionView]:
        """
        A user's history with party display records resolved.

        Every call re-reads storage. A counterparty without a profile gets
        the placeholder record; the rest of the list is unaffected.
        """
        entries = self.list_entries_for_account(account_id)
        if limit is not None:
            entries = entries[:limit]

        parties: Dict[str, PartyRecord] = {}
        views = []
        for entry in entries:
            views.append(self._resolve_with(entry, parties))
        return views

    def resolve(self, entry: TransactionEntry) -> TransactionView:
        return self._resolve_with(entry, {})

    def _resolve_with(self, entry: TransactionEntry, parties: Dict[str, PartyRecord]) -> TransactionView:
        for account_id in (entry.sender_id, entry.recipient_id):
            if account_id not in parties:
                party = self.profiles.resolve_party(account_id)
                if party.is_placeholder:
                    self.logger.warning(f"No profile for account {account_id}, using placeholder")
                parties[account_id] = party

        return TransactionView(
            entry=entry,
            sender=parties[entry.sender_id],
            recipient=parties[entry.recipient_id]
        )

    def _entry_to_dict(self, entry: TransactionEntry) -> Dict:
        result = entry.to_dict()
        result['amount'] = str(entry.amount.amount)
        result['currency'] = entry.amount.currency.code
        result['kind'] = entry.kind.value
        result['status'] = entry.status.value
        return result

    def _entry_from_dict(self, data: Dict) -> TransactionEntry:
        currency = Currency[data['currency']]
        return TransactionEntry(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sender_id=data['sender_id'],
            recipient_id=data['recipient_id'],
            amount=Money(Decimal(data['amount']), currency),
            kind=TransactionKind(data['kind']),
            status=TransactionStatus(data['status']),
            note=data.get('note'),
            idempotency_key=data.get('idempotency_key')
        )
