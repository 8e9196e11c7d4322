"""
FastAPI REST API Module

Invocation surface for the token ledger. The caller identity of each
mutating request comes from the X-Caller header; amounts travel as
decimal strings.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from fastapi import FastAPI, HTTPException, Depends, Header, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
import uvicorn

from .addresses import normalize_address
from .amounts import parse_amount
from .config import TokenLedgerConfig, get_config
from .errors import LedgerError, LedgerNotInitialized
from .events import EventDispatcher, EventLog, EventPayload, TokenEvent
from .ledger import TokenLedger
from .logging_config import setup_logging, get_logger, log_operation
from .storage import StateStore, create_store
from . import __version__


logger = get_logger("token_ledger.api")


# Pydantic models for API requests
class LedgerRequest(BaseModel):
    """Base request validating addresses and decimal-string amounts"""
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("spender", "to", "from_", check_fields=False)
    @classmethod
    def check_address(cls, value: str) -> str:
        return normalize_address(value)

    @field_validator("amount", "added_value", "subtracted_value", check_fields=False)
    @classmethod
    def check_amount(cls, value: str) -> str:
        try:
            parse_amount(value)
        except LedgerError as e:
            raise ValueError(e.reason)
        return value


class ApproveRequest(LedgerRequest):
    spender: str
    amount: str = Field(..., description="Decimal amount as string")


class TransferRequest(LedgerRequest):
    to: str
    amount: str = Field(..., description="Decimal amount as string")


class TransferFromRequest(LedgerRequest):
    from_: str = Field(..., alias="from")
    to: str
    amount: str = Field(..., description="Decimal amount as string")


class IncreaseAllowanceRequest(LedgerRequest):
    spender: str
    added_value: str = Field(..., description="Decimal amount as string")


class DecreaseAllowanceRequest(LedgerRequest):
    spender: str
    subtracted_value: str = Field(..., description="Decimal amount as string")


# Ledger System Context
class LedgerSystem:
    """Token ledger with its store and event plumbing wired together"""

    def __init__(self, config: Optional[TokenLedgerConfig] = None, store: Optional[StateStore] = None):
        self.config = config or get_config()
        self.store = store or create_store(self.config.storage_backend, self.config.database_path)

        self.dispatcher = EventDispatcher()
        self.event_log = EventLog()
        self.last_event: Optional[EventPayload] = None
        self.dispatcher.subscribe_all(self._remember)
        if self.config.enable_event_log:
            self.dispatcher.subscribe_all(self.event_log.append)

        try:
            self.ledger = TokenLedger.open(
                self.store,
                event_sink=self.dispatcher,
                infinite_allowance=self.config.infinite_allowance
            )
            logger.info("Reopened existing ledger")
        except LedgerNotInitialized:
            self.ledger = TokenLedger(
                self.config.initial_supply,
                normalize_address(self.config.owner_address),
                name=self.config.token_name,
                symbol=self.config.token_symbol,
                decimals=self.config.token_decimals,
                store=self.store,
                event_sink=self.dispatcher,
                infinite_allowance=self.config.infinite_allowance
            )

    def _remember(self, event: EventPayload) -> None:
        self.last_event = event


# Global ledger system instance, built lazily
ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    global ledger_system
    if ledger_system is None:
        ledger_system = LedgerSystem()
    return ledger_system


def _path_address(value: str) -> str:
    try:
        return normalize_address(value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def get_caller(x_caller: str = Header(..., alias="X-Caller")) -> str:
    """Caller identity supplied by the invocation context"""
    return _path_address(x_caller)


def _rejected(action: str, caller: str, e: LedgerError, **fields) -> HTTPException:
    """Log a rejected operation and map it to a 400 carrying the reason"""
    log_operation(logger, action, caller, outcome="rejected", extra={"error": e.kind}, **fields)
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": e.kind, "reason": e.reason}
    )


def _last_event(system: LedgerSystem) -> Optional[Dict[str, Any]]:
    event = system.last_event
    return event.to_dict() if event else None


app = FastAPI(
    title="Token Ledger API",
    description="Fixed-supply fungible token ledger with delegated transfers",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/token")
async def get_token(system: LedgerSystem = Depends(get_ledger_system)):
    """Token metadata"""
    ledger = system.ledger
    return {
        "name": ledger.name(),
        "symbol": ledger.symbol(),
        "decimals": ledger.decimals(),
        "total_supply": str(ledger.total_supply())
    }


@app.get("/balances/{account}")
async def get_balance(account: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Balance of an account"""
    account = _path_address(account)
    return {"account": account, "balance": str(system.ledger.balance_of(account))}


@app.get("/allowances/{owner}/{spender}")
async def get_allowance(owner: str, spender: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Remaining allowance of spender over owner's balance"""
    owner = _path_address(owner)
    spender = _path_address(spender)
    return {
        "owner": owner,
        "spender": spender,
        "allowance": str(system.ledger.allowance(owner, spender))
    }


@app.post("/approve")
async def approve(
    request: ApproveRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Set spender's allowance over the caller's balance"""
    amount = parse_amount(request.amount)
    try:
        system.ledger.approve(caller, request.spender, amount)
    except LedgerError as e:
        raise _rejected("approve", caller, e, counterparty=request.spender, amount=amount)
    log_operation(logger, "approve", caller, counterparty=request.spender, amount=amount)
    return {"success": True, "event": _last_event(system)}


@app.post("/transfer")
async def transfer(
    request: TransferRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transfer from the caller's balance"""
    amount = parse_amount(request.amount)
    try:
        system.ledger.transfer(caller, request.to, amount)
    except LedgerError as e:
        raise _rejected("transfer", caller, e, counterparty=request.to, amount=amount)
    log_operation(logger, "transfer", caller, counterparty=request.to, amount=amount)
    return {"success": True, "event": _last_event(system)}


@app.post("/transfer-from")
async def transfer_from(
    request: TransferFromRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delegated transfer bounded by the caller's allowance"""
    amount = parse_amount(request.amount)
    try:
        system.ledger.transfer_from(caller, request.from_, request.to, amount)
    except LedgerError as e:
        raise _rejected("transfer_from", caller, e, counterparty=request.from_, amount=amount)
    log_operation(logger, "transfer_from", caller, counterparty=request.from_, amount=amount,
                  extra={"to": request.to})
    return {"success": True, "event": _last_event(system)}


@app.post("/increase-allowance")
async def increase_allowance(
    request: IncreaseAllowanceRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    amount = parse_amount(request.added_value)
    try:
        system.ledger.increase_allowance(caller, request.spender, amount)
    except LedgerError as e:
        raise _rejected("increase_allowance", caller, e, counterparty=request.spender, amount=amount)
    log_operation(logger, "increase_allowance", caller, counterparty=request.spender, amount=amount)
    return {"success": True, "event": _last_event(system)}


@app.post("/decrease-allowance")
async def decrease_allowance(
    request: DecreaseAllowanceRequest,
    caller: str = Depends(get_caller),
    system: LedgerSystem = Depends(get_ledger_system)
):
    amount = parse_amount(request.subtracted_value)
    try:
        system.ledger.decrease_allowance(caller, request.spender, amount)
    except LedgerError as e:
        raise _rejected("decrease_allowance", caller, e, counterparty=request.spender, amount=amount)
    log_operation(logger, "decrease_allowance", caller, counterparty=request.spender, amount=amount)
    return {"success": True, "event": _last_event(system)}


@app.get("/events")
async def get_events(
    event_type: Optional[TokenEvent] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Emitted events in order, optionally filtered by type"""
    events = system.event_log.filter(event_type=event_type)
    return {"events": [event.to_dict() for event in events], "count": len(events)}


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    uvicorn.run(
        "token_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level="info"
    )
