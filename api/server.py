"""
flare-vault API Server - FastAPI Backend

Endpoints:
- GET  /health                Heartbeat
- GET  /network               Coston2 parameters + wallet add-chain payload
- GET  /vault                 Vault dashboard (address, owner, balance)
- GET  /balance               Current balance
- GET  /owner                 Current owner
- POST /deposit               Deposit FLR (anyone)
- POST /receive               Bare transfer into the vault account
- POST /withdraw              Withdraw to a recipient (owner only)
- POST /withdraw-all          Withdraw everything (owner only)
- POST /transfer-ownership    Hand the vault over (owner only)
- POST /faucet                Testnet funding for an account
- GET  /accounts/{address}    Ledger balance of an account
- GET  /events                Notification log (cursor paging)
- GET  /chain/status          Deployed contract owner + balance (JSON-RPC)
- GET  /chain/wallet/{addr}   Wallet balance on Coston2

Restricted routes take the caller from an EIP-191 signature when signatures
are required, otherwise from the `caller` field (local sandbox). The signed
message carries the request values (recipient, wei amount, new owner), and
each signed message is accepted once.
"""

import os
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.constants import VAULT_RULES
from core.errors import (
    VaultError, Unauthorized, InvalidRecipient, InsufficientBalance, NoBalance,
    ZeroValue, TransferFailed, InsufficientFunds, InvalidSender,
)
from core.network import (
    FLARE_COSTON2, NetworkConfig, wallet_add_chain_params, normalize_address,
    parse_flr, format_flr,
)
from api.auth import AuthError, UsedSignatures, authenticate

logger = logging.getLogger("flarevault.api")


# ============================================================
# MODELS
# ============================================================

class SignedRequest(BaseModel):
    signature: Optional[str] = Field(None, max_length=200)
    timestamp: Optional[int] = None


class DepositRequest(SignedRequest):
    sender: str = Field("", max_length=64)
    amount: str = Field(..., max_length=64)       # decimal FLR, e.g. "1.5"


class WithdrawRequest(SignedRequest):
    caller: str = Field("", max_length=64)
    to: str = Field(..., max_length=64)
    amount: str = Field(..., max_length=64)


class WithdrawAllRequest(SignedRequest):
    caller: str = Field("", max_length=64)
    to: str = Field(..., max_length=64)


class TransferOwnershipRequest(SignedRequest):
    caller: str = Field("", max_length=64)
    new_owner: str = Field(..., max_length=64)


class FaucetRequest(BaseModel):
    address: str = Field(..., max_length=64)
    amount: str = Field(..., max_length=64)


class BalanceResponse(BaseModel):
    balance_wei: str
    balance: str


class OwnerResponse(BaseModel):
    owner: str


# HTTP status per failure kind
ERROR_STATUS = {
    Unauthorized: 403,
    InvalidRecipient: 400,
    InvalidSender: 400,
    ZeroValue: 400,
    InsufficientBalance: 409,
    NoBalance: 409,
    InsufficientFunds: 409,
    TransferFailed: 502,
}


# ============================================================
# SERVER FACTORY
# ============================================================

def create_app(
    vault,
    chain_client=None,
    require_signatures: bool = False,
    faucet_enabled: bool = True,
    state_path: Optional[str] = None,
    network: NetworkConfig = FLARE_COSTON2,
) -> FastAPI:
    """
    Create FastAPI app wired to one vault.

    chain_client: optional ChainClient for the deployed contract (/chain/*)
    state_path: when set, vault state is saved after every successful change
    """
    app = FastAPI(
        title="flare-vault",
        description="Owner-gated FLR vault on Flare Coston2.",
        version="0.1.0",
    )

    # CORS: allow all in dev, restrict in production via CORS_ORIGINS env var
    cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(VaultError)
    async def _vault_error(request: Request, exc: VaultError):
        status = ERROR_STATUS.get(type(exc), 400)
        logger.info(f"REJECTED {request.url.path}: {exc.kind} - {exc.message}")
        return JSONResponse(status_code=status, content={"error": exc.kind, "detail": exc.message})

    # ============================================================
    # HELPERS
    # ============================================================

    def _address(value: str, field: str) -> str:
        try:
            return normalize_address(value)
        except ValueError:
            raise HTTPException(400, f"Invalid {field} address: {value!r}")

    def _amount(value: str) -> int:
        try:
            return parse_flr(value)
        except ValueError as e:
            raise HTTPException(400, str(e))

    used_signatures = UsedSignatures()

    def _caller(action: str, claimed: str, req: SignedRequest, params: list) -> str:
        if require_signatures:
            try:
                signer = authenticate(action, req.signature, req.timestamp, params, used=used_signatures)
            except AuthError as e:
                raise HTTPException(401, str(e))
            if claimed and _address(claimed, "caller") != signer:
                raise HTTPException(401, "signature does not match caller")
            return signer
        if not claimed:
            raise HTTPException(400, "caller address required")
        return _address(claimed, "caller")

    def _persist():
        if state_path:
            vault.save_state(state_path)

    def _balance_body() -> dict:
        balance = vault.get_balance()
        return {"balance_wei": str(balance), "balance": format_flr(balance)}

    def _changed() -> dict:
        _persist()
        latest = vault.events.latest(1)
        return {
            "status": "ok",
            **_balance_body(),
            "event": latest[0].to_dict() if latest else None,
        }

    # ============================================================
    # READ ROUTES
    # ============================================================

    @app.get("/health")
    async def health():
        """Heartbeat endpoint."""
        return {
            "status": "ok",
            "vault": vault.address,
            "event_count": len(vault.events),
        }

    @app.get("/network")
    async def network_info():
        return {
            "name": network.name,
            "chain_id": network.chain_id,
            "currency": network.currency,
            "rpc_url": network.rpc_url,
            "explorer": network.explorer,
            "wallet_params": wallet_add_chain_params(network),
        }

    @app.get("/vault")
    async def vault_status():
        """Public vault dashboard."""
        return vault.get_status()

    @app.get("/balance", response_model=BalanceResponse)
    async def balance():
        return _balance_body()

    @app.get("/owner", response_model=OwnerResponse)
    async def owner():
        return {"owner": vault.get_owner()}

    @app.get("/accounts/{address}")
    async def account(address: str):
        addr = _address(address, "account")
        wei = vault.ledger.balance_of(addr)
        return {"address": addr, "balance_wei": str(wei), "balance": format_flr(wei)}

    @app.get("/events")
    async def events(since: int = 0, limit: int = 50):
        """Notification log, oldest first. Pass `next` back as `since` to poll."""
        limit = max(0, min(limit, VAULT_RULES.MAX_EVENTS_PAGE))
        page = vault.events.since(since, limit)
        next_cursor = page[-1].index + 1 if page else max(since, 0)
        return {"events": [e.to_dict() for e in page], "next": next_cursor}

    # ============================================================
    # WRITE ROUTES
    # ============================================================

    @app.post("/deposit")
    async def deposit(req: DepositRequest):
        amount = _amount(req.amount)
        sender = _caller("deposit", req.sender, req, [amount])
        vault.deposit(sender, amount)
        return _changed()

    @app.post("/receive")
    async def receive(req: DepositRequest):
        """Bare value transfer into the vault account (no deposit() call)."""
        amount = _amount(req.amount)
        sender = _caller("receive", req.sender, req, [amount])
        vault.receive(sender, amount)
        if amount == 0:
            return {"status": "ignored", **_balance_body(), "event": None}
        return _changed()

    @app.post("/withdraw")
    async def withdraw(req: WithdrawRequest):
        to = _address(req.to, "recipient")
        amount = _amount(req.amount)
        caller = _caller("withdraw", req.caller, req, [to, amount])
        vault.withdraw(caller, to, amount)
        return _changed()

    @app.post("/withdraw-all")
    async def withdraw_all(req: WithdrawAllRequest):
        to = _address(req.to, "recipient")
        caller = _caller("withdrawAll", req.caller, req, [to])
        vault.withdraw_all(caller, to)
        return _changed()

    @app.post("/transfer-ownership")
    async def transfer_ownership(req: TransferOwnershipRequest):
        new_owner = _address(req.new_owner, "new owner")
        caller = _caller("transferOwnership", req.caller, req, [new_owner])
        vault.transfer_ownership(caller, new_owner)
        body = _changed()
        body["owner"] = vault.get_owner()
        return body

    @app.post("/faucet")
    async def faucet(req: FaucetRequest):
        """Credit an account with test FLR."""
        if not faucet_enabled:
            raise HTTPException(403, "Faucet disabled")
        addr = _address(req.address, "account")
        amount = _amount(req.amount)
        if amount == 0:
            raise HTTPException(400, "Faucet amount must be positive")
        new_balance = vault.ledger.fund(addr, amount)
        _persist()
        return {"address": addr, "balance_wei": str(new_balance), "balance": format_flr(new_balance)}

    # ============================================================
    # DEPLOYED CONTRACT (JSON-RPC)
    # ============================================================

    @app.get("/chain/status")
    async def chain_status():
        if chain_client is None:
            raise HTTPException(501, "Chain client not configured")

        from core.chain import ContractNotDeployed, friendly_error
        try:
            owner_addr = await chain_client.get_contract_owner()
            balance_flr = await chain_client.get_contract_balance()
        except ContractNotDeployed as e:
            raise HTTPException(404, str(e))
        except Exception as e:
            raise HTTPException(503, friendly_error(e))

        return {
            "contract_address": chain_client.contract_address,
            "network": chain_client.network.name,
            "owner": owner_addr,
            "balance": balance_flr,
        }

    @app.get("/chain/wallet/{address}")
    async def chain_wallet(address: str):
        if chain_client is None:
            raise HTTPException(501, "Chain client not configured")

        from core.chain import BUSY_MESSAGE
        addr = _address(address, "wallet")
        balance_flr = await chain_client.get_wallet_balance(addr)
        if balance_flr is None:
            raise HTTPException(503, BUSY_MESSAGE)
        return {"address": addr, "balance": balance_flr}

    return app
