"""
Chain Client - JSON-RPC access to the deployed vault contract

Bridges the Python side and the SimpleFlareWallet contract on Flare Coston2.

Design:
- Sync Web3 calls wrapped in asyncio.run_in_executor()
- Embedded minimal ABI with only the functions and events we use
- Reads check that code is deployed at the address before calling
- Rate limiting (-32005 / HTTP 429) retried with exponential backoff;
  every other error surfaces at once
- Writes: build, sign, send (retried), then wait for the receipt (not retried)
- Non-fatal writes: failure returns ChainTxResult(success=False, error=<friendly message>)

Designed for: owner-gated testnet vault
"""

import os
import asyncio
import inspect
import logging
import functools
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from .constants import VAULT_RULES, NATIVE_DECIMALS
from .network import (
    NetworkConfig, network_from_env, normalize_address, parse_flr, format_flr,
    explorer_tx_url, short_address,
)

logger = logging.getLogger("flarevault.chain")


DEFAULT_CONTRACT_ADDRESS = "0x735E060B08aB94905D50de4760c8f53594cc07F9"

BUSY_MESSAGE = "Network is busy. Please wait a moment and try again."
CANCELLED_MESSAGE = "Transaction was cancelled"
NO_FUNDS_MESSAGE = "Insufficient funds for this transaction"


# ============================================================
# MINIMAL ABI: SimpleFlareWallet
# ============================================================

VAULT_ABI = [
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getBalance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "deposit",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "withdraw",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "to", "type": "address"}],
        "name": "withdrawAll",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "newOwner", "type": "address"}],
        "name": "transferOwnership",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
        ],
        "name": "Deposited",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
        ],
        "name": "Withdrawn",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "oldOwner", "type": "address"},
            {"indexed": True, "name": "newOwner", "type": "address"},
        ],
        "name": "OwnerChanged",
        "type": "event",
    },
]


class ContractNotDeployed(Exception):
    """No code at the configured contract address."""
    pass


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

def _error_payload(exc: BaseException) -> dict:
    """Best-effort JSON-RPC error dict from the shapes web3/requests raise."""
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get("error"), dict):
        return rpc_response["error"]
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return {}


def _error_code(exc: BaseException):
    code = getattr(exc, "code", None)
    if code is None:
        code = _error_payload(exc).get("code")
    return code


def _http_status(exc: BaseException):
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if status is not None:
        return status
    data = getattr(exc, "data", None)
    if not isinstance(data, dict):
        data = _error_payload(exc).get("data")
    if isinstance(data, dict):
        return data.get("httpStatus")
    return None


def is_rate_limited(exc: BaseException) -> bool:
    return (
        _error_code(exc) == VAULT_RULES.RATE_LIMIT_RPC_CODE
        or _http_status(exc) == VAULT_RULES.RATE_LIMIT_HTTP_STATUS
    )


def friendly_error(exc: BaseException) -> str:
    """User-facing message for a failed RPC call or transaction."""
    if is_rate_limited(exc):
        return BUSY_MESSAGE
    text = str(exc)
    if _error_code(exc) == VAULT_RULES.USER_REJECTED_CODE or "user rejected" in text.lower():
        return CANCELLED_MESSAGE
    if "insufficient funds" in text.lower():
        return NO_FUNDS_MESSAGE
    return text or type(exc).__name__


async def retry_with_backoff(
    fn: Callable[[], Awaitable],
    max_retries: int = VAULT_RULES.RETRY_MAX_ATTEMPTS,
    base_delay: float = VAULT_RULES.RETRY_BASE_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable] = asyncio.sleep,
):
    """
    Await fn(), retrying only when the node rate-limits us.
    Delay doubles each attempt: base, 2*base, 4*base...
    The final rate-limit error (or any other error) propagates.
    """
    for attempt in range(max_retries):
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            if is_rate_limited(e) and attempt < max_retries - 1:
                delay = base_delay * (2 ** attempt)
                logger.warning(f"Rate limited, retrying in {delay:.1f}s... (attempt {attempt + 1}/{max_retries})")
                await sleep(delay)
                continue
            raise


# ============================================================
# RESULT TYPE
# ============================================================

@dataclass
class ChainTxResult:
    """Result of an on-chain transaction attempt."""
    success: bool
    tx_hash: str = ""
    error: str = ""
    gas_used: int = 0
    block_number: int = 0
    explorer_url: str = ""


# ============================================================
# CHAIN CLIENT
# ============================================================

class ChainClient:
    """
    Reads and writes the deployed vault contract.

    Usage:
        client = ChainClient(private_key=os.getenv("PRIVATE_KEY", ""))
        if client.connect():
            balance = await client.get_contract_balance()
            result = await client.deposit("1.5")
    """

    def __init__(
        self,
        network: Optional[NetworkConfig] = None,
        contract_address: Optional[str] = None,
        private_key: str = "",
        w3=None,
        retry_base_delay: float = VAULT_RULES.RETRY_BASE_DELAY_SECONDS,
    ):
        self.network = network or network_from_env()
        self.contract_address = normalize_address(
            contract_address or os.getenv("CONTRACT_ADDRESS") or DEFAULT_CONTRACT_ADDRESS
        )
        self._private_key = private_key
        self._sender = ""
        if private_key:
            from eth_account import Account
            self._sender = Account.from_key(private_key).address

        self._w3 = w3
        self._contract = None
        self._retry_base_delay = retry_base_delay

        self._last_error: str = ""
        self._tx_count: int = 0

    @property
    def sender(self) -> str:
        return self._sender

    def connect(self) -> bool:
        """Create the Web3 connection and contract handle. Returns False if the RPC is unreachable."""
        if self._w3 is None:
            from web3 import Web3
            w3 = Web3(Web3.HTTPProvider(self.network.rpc_url, request_kwargs={"timeout": 30}))
            if not w3.is_connected():
                logger.warning(f"Cannot connect to {self.network.name} RPC ({self.network.rpc_url})")
                self._last_error = "rpc unreachable"
                return False
            self._w3 = w3

        self._contract = self._w3.eth.contract(address=self.contract_address, abi=VAULT_ABI)
        logger.info(
            f"Chain client connected: {self.network.name} | "
            f"contract={short_address(self.contract_address)}"
            + (f" | signer={short_address(self._sender)}" if self._sender else "")
        )
        return True

    @property
    def w3(self):
        if self._w3 is None and not self.connect():
            raise ConnectionError(f"cannot reach {self.network.rpc_url}")
        return self._w3

    @property
    def contract(self):
        if self._contract is None:
            self._contract = self.w3.eth.contract(address=self.contract_address, abi=VAULT_ABI)
        return self._contract

    async def _run(self, fn, *args, **kwargs):
        return await asyncio.get_running_loop().run_in_executor(
            None, functools.partial(fn, *args, **kwargs)
        )

    async def _with_retry(self, fn, *args, **kwargs):
        return await retry_with_backoff(
            lambda: self._run(fn, *args, **kwargs),
            base_delay=self._retry_base_delay,
        )

    async def _ensure_deployed(self):
        code = await self._with_retry(self.w3.eth.get_code, self.contract_address)
        empty = code in ("", "0x") if isinstance(code, str) else len(code) == 0
        if empty:
            raise ContractNotDeployed(f"Contract not deployed at address {self.contract_address}")

    # ============================================================
    # READS
    # ============================================================

    async def get_contract_balance_wei(self) -> int:
        await self._ensure_deployed()
        return int(await self._with_retry(self.w3.eth.get_balance, self.contract_address))

    async def get_contract_balance(self) -> str:
        """Vault account balance in FLR. Reads the account, not getBalance()."""
        try:
            return format_flr(await self.get_contract_balance_wei())
        except Exception as e:
            logger.error(f"Error getting contract balance: {e}")
            self._last_error = f"balance: {e}"
            raise

    async def get_contract_owner(self) -> str:
        try:
            await self._ensure_deployed()
            owner = await self._with_retry(self.contract.functions.owner().call)
            return normalize_address(owner)
        except Exception as e:
            logger.error(f"Error getting contract owner: {e}")
            self._last_error = f"owner: {e}"
            raise

    async def get_wallet_balance(self, address: str) -> Optional[str]:
        """
        FLR balance of any account, 4 decimals.
        None means "keep the last known value" (rate limited or RPC error).
        """
        address = normalize_address(address)
        try:
            wei = await self._with_retry(self.w3.eth.get_balance, address)
        except Exception as e:
            if is_rate_limited(e):
                logger.warning("Rate limited after retries, will try again later")
            else:
                logger.error(f"Error getting balance for {short_address(address)}: {e}")
            self._last_error = f"wallet_balance: {e}"
            return None
        flr = Decimal(int(wei)) / (Decimal(10) ** NATIVE_DECIMALS)
        return f"{flr:.{VAULT_RULES.WALLET_BALANCE_DECIMALS}f}"

    # ============================================================
    # WRITES
    # ============================================================

    async def _send_tx(self, label: str, tx_fn, value: int = 0) -> ChainTxResult:
        if not self._private_key:
            return ChainTxResult(success=False, error="no signing key configured")

        w3 = self.w3

        def _submit():
            tx = tx_fn.build_transaction({
                "from": self._sender,
                "nonce": w3.eth.get_transaction_count(self._sender),
                "gasPrice": w3.eth.gas_price,
                "chainId": self.network.chain_id,
                "value": value,
            })
            try:
                tx["gas"] = int(w3.eth.estimate_gas(tx) * VAULT_RULES.GAS_BUFFER_RATIO)
            except Exception as gas_err:
                # A revert shows up here first; surface it instead of burning gas
                if "revert" in str(gas_err).lower():
                    raise
                logger.warning(f"Gas estimation failed for {label}, using default: {gas_err}")
                tx["gas"] = VAULT_RULES.DEFAULT_GAS_LIMIT
            signed = w3.eth.account.sign_transaction(tx, self._private_key)
            return w3.eth.send_raw_transaction(signed.raw_transaction)

        try:
            tx_hash = await self._with_retry(_submit)
            tx_hash_hex = tx_hash.hex() if hasattr(tx_hash, "hex") else str(tx_hash)
            if not tx_hash_hex.startswith("0x"):
                tx_hash_hex = "0x" + tx_hash_hex
            logger.info(f"TX SENT [{label}]: {tx_hash_hex}")

            receipt = await self._run(
                w3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=VAULT_RULES.TX_RECEIPT_TIMEOUT_SECONDS,
            )
        except Exception as e:
            error = friendly_error(e)
            logger.warning(f"TX ERROR [{label}]: {type(e).__name__}: {e}")
            self._last_error = error
            return ChainTxResult(success=False, error=error)

        if receipt["status"] != 1:
            error = f"TX reverted: {tx_hash_hex}"
            logger.warning(f"TX FAILED [{label}]: {error}")
            self._last_error = error
            return ChainTxResult(
                success=False,
                tx_hash=tx_hash_hex,
                error=error,
                explorer_url=explorer_tx_url(tx_hash_hex, self.network),
            )

        self._tx_count += 1
        gas_used = receipt.get("gasUsed", 0)
        logger.info(f"TX SUCCESS [{label}]: {tx_hash_hex} | gas={gas_used}")
        return ChainTxResult(
            success=True,
            tx_hash=tx_hash_hex,
            gas_used=gas_used,
            block_number=receipt.get("blockNumber", 0),
            explorer_url=explorer_tx_url(tx_hash_hex, self.network),
        )

    async def deposit(self, amount) -> ChainTxResult:
        """deposit() with `amount` FLR attached."""
        try:
            value = parse_flr(amount)
        except ValueError as e:
            return ChainTxResult(success=False, error=str(e))
        if value == 0:
            return ChainTxResult(success=False, error="amount must be positive")
        return await self._send_tx("deposit", self.contract.functions.deposit(), value=value)

    async def withdraw(self, to: str, amount) -> ChainTxResult:
        try:
            to = normalize_address(to)
            value = parse_flr(amount)
        except ValueError as e:
            return ChainTxResult(success=False, error=str(e))
        return await self._send_tx("withdraw", self.contract.functions.withdraw(to, value))

    async def withdraw_all(self, to: str) -> ChainTxResult:
        try:
            to = normalize_address(to)
        except ValueError as e:
            return ChainTxResult(success=False, error=str(e))
        return await self._send_tx("withdrawAll", self.contract.functions.withdrawAll(to))

    async def transfer_ownership(self, new_owner: str) -> ChainTxResult:
        try:
            new_owner = normalize_address(new_owner)
        except ValueError as e:
            return ChainTxResult(success=False, error=str(e))
        return await self._send_tx("transferOwnership", self.contract.functions.transferOwnership(new_owner))

    # ============================================================
    # STATUS
    # ============================================================

    def get_status(self) -> dict:
        return {
            "network": self.network.name,
            "chain_id": self.network.chain_id,
            "contract_address": self.contract_address,
            "connected": self._w3 is not None,
            "signer": short_address(self._sender) if self._sender else "",
            "tx_count": self._tx_count,
            "last_error": self._last_error,
        }
