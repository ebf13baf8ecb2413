"""
VAULT RULES - Fixed Parameters

Constants shared by the vault engine, the chain client and the API.
Frozen dataclass = immutable at runtime. Environment overrides are applied
by the callers (main.py, scripts), never by mutating these values.

Designed for: owner-gated testnet vault
"""

from dataclasses import dataclass
from typing import Final


# Null identity: the zero address. Never a valid owner or recipient.
NULL_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000000"

# 1 FLR = 10**18 wei
NATIVE_DECIMALS: Final[int] = 18

# Largest amount an EVM uint256 can carry
MAX_UINT256: Final[int] = 2 ** 256 - 1


@dataclass(frozen=True)
class VaultRules:
    """Frozen dataclass = truly immutable at runtime."""

    # --- NOTIFICATIONS ---
    MAX_EVENTS_IN_MEMORY: Final[int] = 5000       # Oldest events trimmed past this cap
    MAX_EVENTS_PERSISTED: Final[int] = 1000       # Only the newest are written to disk
    MAX_EVENTS_PAGE: Final[int] = 200             # Upper bound for one /events page

    # --- RPC RETRY (rate limiting only) ---
    RETRY_MAX_ATTEMPTS: Final[int] = 3
    RETRY_BASE_DELAY_SECONDS: Final[float] = 1.0  # delay = base * 2**attempt
    RATE_LIMIT_RPC_CODE: Final[int] = -32005      # JSON-RPC "limit exceeded"
    RATE_LIMIT_HTTP_STATUS: Final[int] = 429
    USER_REJECTED_CODE: Final[int] = 4001         # Wallet "user rejected request"

    # --- TRANSACTIONS ---
    TX_RECEIPT_TIMEOUT_SECONDS: Final[int] = 60
    GAS_BUFFER_RATIO: Final[float] = 1.2          # estimate + 20%
    DEFAULT_GAS_LIMIT: Final[int] = 200_000

    # --- DISPLAY ---
    WALLET_BALANCE_DECIMALS: Final[int] = 4

    # --- API AUTH ---
    SIGNATURE_MAX_AGE_SECONDS: Final[int] = 300   # Signed requests older than 5 min are refused


VAULT_RULES = VaultRules()
