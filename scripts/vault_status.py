#!/usr/bin/env python3
"""
Deployed Vault Status
=====================
Reads the deployed SimpleFlareWallet on Flare Coston2 over JSON-RPC and prints
its owner and balance, optionally with a wallet's balance. Rate-limited
calls are retried with exponential backoff.

Usage:
    python scripts/vault_status.py                         # Contract owner + balance
    python scripts/vault_status.py --wallet 0xabc...       # Also a wallet balance
    python scripts/vault_status.py --contract 0xdef...     # Another deployment
    python scripts/vault_status.py --json                  # Output as JSON
"""

import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

load_dotenv(ROOT / ".env")

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("flarevault.status")

from core.chain import ChainClient, ContractNotDeployed, friendly_error  # noqa: E402
from core.network import explorer_address_url, normalize_address  # noqa: E402


async def collect_status(client: ChainClient, wallet: Optional[str] = None) -> dict:
    """Owner, balance and (optionally) a wallet balance. Errors land in 'error'."""
    status = {
        "network": client.network.name,
        "contract_address": client.contract_address,
        "explorer": explorer_address_url(client.contract_address, client.network),
    }
    try:
        status["owner"] = await client.get_contract_owner()
        status["balance"] = await client.get_contract_balance()
    except ContractNotDeployed as e:
        status["error"] = str(e)
    except Exception as e:
        status["error"] = friendly_error(e)

    if wallet:
        status["wallet"] = wallet
        status["wallet_balance"] = await client.get_wallet_balance(wallet)
    return status


def print_status(status: dict, currency: str = "FLR"):
    print("=" * 60)
    print(f"  Network:   {status['network']}")
    print(f"  Contract:  {status['contract_address']}")
    if "error" in status:
        print(f"  ERROR:     {status['error']}")
    else:
        print(f"  Owner:     {status['owner']}")
        print(f"  Balance:   {status['balance']} {currency}")
    if "wallet" in status:
        wb = status["wallet_balance"]
        print(f"  Wallet:    {status['wallet']}")
        print(f"  Wallet balance: {wb + ' ' + currency if wb is not None else 'unavailable (try again later)'}")
    print(f"  Explorer:  {status['explorer']}")
    print("=" * 60)


def _address_arg(value: str) -> str:
    try:
        return normalize_address(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a valid address: {value!r}")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show the deployed vault's owner and balance")
    parser.add_argument("--contract", type=_address_arg, default=None,
                        help="Contract address (default: CONTRACT_ADDRESS or built-in)")
    parser.add_argument("--wallet", type=_address_arg, default=None, help="Also show this wallet's balance")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    return parser.parse_args(argv)


def main() -> None:
    args = parse_args()

    client = ChainClient(contract_address=args.contract)
    if not client.connect():
        print(f"Cannot connect to {client.network.rpc_url}", file=sys.stderr)
        sys.exit(1)

    status = asyncio.run(collect_status(client, args.wallet))

    if args.json:
        print(json.dumps(status, indent=2))
    else:
        print_status(status, client.network.currency)

    if "error" in status:
        sys.exit(2)


if __name__ == "__main__":
    main()
