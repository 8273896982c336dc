"""
FastAPI REST API Module

HTTP surface for the transfer core: signup hook, balance and profile
lookup, recipient search, transaction history, and send/request money.
Callers authenticate with a bearer JWT issued by the external auth
provider; its ``sub`` claim is the caller's account id.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, Field
import jwt
import uvicorn

from . import __version__
from .config import PeerPayConfig, get_config
from .currency import Currency
from .storage import StorageInterface, create_storage
from .audit import AuditTrail
from .accounts import AccountStore
from .profiles import ProfileDirectory
from .ledger import TransactionLedger
from .transfers import TransferCoordinator
from .errors import PeerPayError
from .logging_config import setup_logging, get_logger


ERROR_STATUS = {
    "invalid_amount": status.HTTP_400_BAD_REQUEST,
    "invalid_parties": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "account_exists": status.HTTP_409_CONFLICT,
    "insufficient_funds": status.HTTP_409_CONFLICT,
    "invalid_kind": status.HTTP_400_BAD_REQUEST,
    "idempotency_conflict": status.HTTP_409_CONFLICT,
    "persistence_failure": status.HTTP_503_SERVICE_UNAVAILABLE,
}

logger = get_logger("peerpay.api")
security = HTTPBearer(auto_error=False)


class PaymentSystem:
    """Ledger core with all components wired to one storage backend"""

    def __init__(self, config: Optional[PeerPayConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.account_store = AccountStore(
            self.storage, self.audit_trail,
            default_currency=Currency[self.config.default_currency]
        )
        self.profiles = ProfileDirectory(self.storage, self.audit_trail)
        self.ledger = TransactionLedger(self.storage, self.audit_trail, self.profiles)
        self.coordinator = TransferCoordinator(
            self.storage, self.account_store, self.ledger, self.audit_trail,
            enforce_sufficient_funds=self.config.enforce_sufficient_funds,
            max_transaction_amount=Decimal(self.config.max_transaction_amount)
        )

    def close(self) -> None:
        self.storage.close()


# Pydantic models for API requests
class OpenAccountRequest(BaseModel):
    name: str
    email: str
    avatar: str = ""
    opening_balance: str = Field("0", description="Decimal amount as string")


class SendMoneyRequest(BaseModel):
    recipient_id: str
    amount: str = Field(..., description="Decimal amount as string")
    note: Optional[str] = None


class RequestMoneyRequest(BaseModel):
    payer_id: str
    amount: str = Field(..., description="Decimal amount as string")
    note: Optional[str] = None


def get_payment_system(request: Request) -> PaymentSystem:
    return request.app.state.system


def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_account_id: Optional[str] = Header(None, alias="X-Account-Id"),
    system: PaymentSystem = Depends(get_payment_system)
) -> str:
    """Dependency that validates the session JWT and returns the caller's account id"""
    if not system.config.auth_enabled:
        # Local development: the caller names itself
        if not x_account_id:
            raise HTTPException(status_code=401, detail="X-Account-Id header required")
        return x_account_id

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(
            credentials.credentials,
            system.config.jwt_secret,
            algorithms=[system.config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    account_id = payload.get("sub")
    if not account_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return account_id


def create_app(system: Optional[PaymentSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    system = system or PaymentSystem()
    config = system.config
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="PeerPay API",
        description="Peer-to-peer payments over an atomic balance ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PeerPayError)
    async def peerpay_error_handler(request: Request, exc: PeerPayError):
        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
            content=exc.to_dict()
        )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/accounts", status_code=status.HTTP_201_CREATED)
    def open_account(
        body: OpenAccountRequest,
        account_id: str = Depends(get_current_account),
        system: PaymentSystem = Depends(get_payment_system)
    ):
        """Signup hook: open the balance record and register the profile"""
        try:
            with system.storage.atomic():
                account = system.account_store.open_account(account_id, body.opening_balance)
                profile = system.profiles.register_profile(
                    account_id, body.name, body.email, body.avatar
                )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {
            "id": account.id,
            "balance": str(account.balance.amount),
            "currency": account.currency.code,
            "name": profile.name,
            "avatar": profile.avatar
        }

    @app.get("/accounts/me")
    def get_my_account(
        account_id: str = Depends(get_current_account),
        system: PaymentSystem = Depends(get_payment_system)
    ):
        """Caller's balance and display profile"""
        balance = system.account_store.get_balance(account_id)
        party = system.profiles.resolve_party(account_id)
        return {
            "id": account_id,
            "balance": str(balance.amount),
            "currency": balance.currency.code,
            "name": party.name,
            "avatar": party.avatar
        }

    @app.get("/profiles/search")
    def search_profiles(
        q: str = Query(..., min_length=1),
        account_id: str = Depends(get_current_account),
        system: PaymentSystem = Depends(get_payment_system)
    ):
        """Find recipients by name or email"""
        profiles = system.profiles.search_profiles(q, limit=system.config.profile_search_limit)
        return [
            {"id": p.id, "name": p.name, "email": p.email, "avatar": p.avatar}
            for p in profiles if p.id != account_id
        ]

    @app.get("/transactions")
    def list_transactions(
        limit: Optional[int] = Query(None, ge=1, le=500),
        account_id: str = Depends(get_current_account),
        system: PaymentSystem = Depends(get_payment_system)
    ):
        """Caller's history, newest first"""
        views = system.ledger.list_for_user(
            account_id, limit=limit or system.config.history_default_limit
        )
        return [view.to_dict() for view in views]

    @app.get("/transactions/{transaction_id}")
    def get_transaction(
        transaction_id: str,
        account_id: str = Depends(get_current_account),
        system: PaymentSystem = Depends(get_payment_system)
    ):
        entry = system.ledger.get_entry(transaction_id)
        # Entries are only visible to their own parties
        if not entry or not entry.involves(account_id):
            raise HTTPException(status_code=404, detail="Transaction not found")
        return system.ledger.resolve(entry).to_dict()

    @app.post("/transactions/send", status_code=status.HTTP_201_CREATED)
    def send_money(
        body: SendMoneyRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        account_id: str = Depends(get_current_account),
        system: PaymentSystem = Depends(get_payment_system)
    ):
        """Pay another account"""
        view = system.coordinator.send_money(
            account_id, body.recipient_id, body.amount,
            note=body.note, idempotency_key=idempotency_key
        )
        return view.to_dict()

    @app.post("/transactions/request", status_code=status.HTTP_201_CREATED)
    def request_money(
        body: RequestMoneyRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        account_id: str = Depends(get_current_account),
        system: PaymentSystem = Depends(get_payment_system)
    ):
        """Ask another account for money"""
        view = system.coordinator.request_money(
            account_id, body.payer_id, body.amount,
            note=body.note, idempotency_key=idempotency_key
        )
        return view.to_dict()

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the API with uvicorn"""
    config = get_config()
    uvicorn.run(
        "peerpay.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port
    )
