"""
Network - Flare Coston2 configuration, addresses and units

- Coston2 testnet parameters (chain id 114, FLR, public RPC)
- Wallet `wallet_addEthereumChain` payload for browser wallets
- Address normalization (EIP-55 checksum, null address detection)
- FLR <-> wei conversion (amounts travel as decimal strings, live as int wei)

Designed for: owner-gated testnet vault
"""

import os
from dataclasses import dataclass
from decimal import Decimal, DecimalException, Inexact, localcontext
from typing import Final

from web3 import Web3

from .constants import NULL_ADDRESS, NATIVE_DECIMALS, MAX_UINT256


@dataclass(frozen=True)
class NetworkConfig:
    chain_id: int
    name: str
    currency: str
    rpc_url: str
    explorer: str

    @property
    def chain_id_hex(self) -> str:
        return hex(self.chain_id)

    def with_rpc(self, rpc_url: str) -> "NetworkConfig":
        return NetworkConfig(
            chain_id=self.chain_id,
            name=self.name,
            currency=self.currency,
            rpc_url=rpc_url,
            explorer=self.explorer,
        )


FLARE_COSTON2: Final[NetworkConfig] = NetworkConfig(
    chain_id=114,
    name="Flare Coston2",
    currency="FLR",
    rpc_url="https://coston2-api.flare.network/ext/C/rpc",
    explorer="https://coston2-explorer.flare.network",
)


def network_from_env() -> NetworkConfig:
    """Coston2 with an optional COSTON2_RPC_URL override."""
    rpc_url = os.getenv("COSTON2_RPC_URL", "")
    return FLARE_COSTON2.with_rpc(rpc_url) if rpc_url else FLARE_COSTON2


def wallet_add_chain_params(network: NetworkConfig = FLARE_COSTON2) -> dict:
    """Payload for `wallet_addEthereumChain` (browser wallet network setup)."""
    return {
        "chainId": network.chain_id_hex,
        "chainName": network.name,
        "nativeCurrency": {
            "name": network.currency,
            "symbol": network.currency,
            "decimals": NATIVE_DECIMALS,
        },
        "rpcUrls": [network.rpc_url],
        "blockExplorerUrls": [network.explorer],
    }


def explorer_tx_url(tx_hash: str, network: NetworkConfig = FLARE_COSTON2) -> str:
    return f"{network.explorer}/tx/{tx_hash}"


def explorer_address_url(address: str, network: NetworkConfig = FLARE_COSTON2) -> str:
    return f"{network.explorer}/address/{address}"


# ============================================================
# ADDRESSES
# ============================================================

def normalize_address(value: str) -> str:
    """
    Return the EIP-55 checksum form of an address.
    Raises ValueError for anything that is not a 20-byte hex address
    (including mixed-case strings with a bad checksum).
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"invalid address: {value!r}")
    return Web3.to_checksum_address(value)


def is_null_address(value: str) -> bool:
    return normalize_address(value) == NULL_ADDRESS


def short_address(value: str) -> str:
    """0x1234...abcd for logs and messages."""
    if len(value) <= 10:
        return value
    return f"{value[:6]}...{value[-4:]}"


# ============================================================
# UNITS
# ============================================================

def parse_flr(amount) -> int:
    """
    Convert a decimal FLR amount ("1.5", 2, Decimal) to wei.
    Raises ValueError for negative, non-finite, over-precise or
    out-of-range (above uint256) amounts.
    """
    if isinstance(amount, bool):
        raise ValueError(f"invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount).strip())
        if not value.is_finite() or value < 0:
            raise ValueError(f"invalid amount: {amount!r}")
        with localcontext() as ctx:
            ctx.prec = 80
            ctx.traps[Inexact] = True
            wei = value * (Decimal(10) ** NATIVE_DECIMALS)
    except DecimalException:
        raise ValueError(f"invalid amount: {amount!r}")
    if wei > MAX_UINT256:
        raise ValueError(f"amount too large: {amount!r}")
    if wei != wei.to_integral_value():
        raise ValueError(f"amount has more than {NATIVE_DECIMALS} decimals: {amount!r}")
    return int(wei)


def format_flr(wei: int) -> str:
    """Wei to a decimal FLR string; whole amounts keep one decimal ("10.0")."""
    value = Web3.from_wei(int(wei), "ether")
    text = format(Decimal(value).normalize(), "f")
    if "." not in text:
        text += ".0"
    return text
