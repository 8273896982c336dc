"""
Error Taxonomy

Typed failures reported to callers of the ledger core. Every error carries
a stable ``code`` so outer layers (HTTP API, UI) can map it to a message
without parsing text.
"""

from typing import Any, Dict, Optional


class PeerPayError(Exception):
    """Base class for all PeerPay failures"""

    code = "peerpay_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class InvalidAmount(PeerPayError):
    """Amount is zero, negative, non-numeric or above the allowed maximum"""
    code = "invalid_amount"


class InvalidParties(PeerPayError):
    """Sender equals recipient, or a party cannot be resolved to an account"""
    code = "invalid_parties"


class NotFound(PeerPayError):
    """Referenced account or entry does not exist"""
    code = "not_found"


class AccountExists(PeerPayError):
    code = "account_exists"


class InsufficientFunds(PeerPayError):
    """Sender balance does not cover the payment"""
    code = "insufficient_funds"


class PersistenceFailure(PeerPayError):
    """
    Underlying storage write failed.
    Never swallowed: it may indicate the transfer did not commit.
    """
    code = "persistence_failure"


class InvalidKind(PeerPayError):
    """Transaction kind is neither payment nor request"""
    code = "invalid_kind"


class IdempotencyConflict(PeerPayError):
    """
    A retry key was reused for a different transfer by the same sender
    """
    code = "idempotency_conflict"
