"""
Ledger - the execution environment's account balances

The vault does not count its own money. Its balance IS the balance of its
account here, so value sent straight to the vault account shows up without
any vault logic running.

transfer() mirrors a low-level value call: it never raises for a refused
transfer, it returns a TransferResult whose success flag the caller must check.
"""

import logging
from dataclasses import dataclass

from .network import normalize_address, short_address

logger = logging.getLogger("flarevault.ledger")


@dataclass
class TransferResult:
    """Outcome of a value transfer attempt."""
    success: bool
    src: str = ""
    dst: str = ""
    amount: int = 0
    error: str = ""


def _check_amount(amount) -> int:
    # bool is an int subclass; True is not 1 wei
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"invalid amount: {amount!r} (must be a non-negative integer of wei)")
    return amount


class Ledger:
    """Account address -> wei balance, plus accounts that refuse incoming value."""

    def __init__(self):
        self._balances: dict[str, int] = {}
        self._rejecting: set[str] = set()

    def balance_of(self, address: str) -> int:
        return self._balances.get(normalize_address(address), 0)

    def accounts(self) -> dict[str, int]:
        return {a: b for a, b in self._balances.items() if b > 0}

    def fund(self, address: str, amount: int) -> int:
        """Testnet faucet credit. Returns the new balance."""
        amount = _check_amount(amount)
        if amount == 0:
            raise ValueError("faucet amount must be positive")
        addr = normalize_address(address)
        self._balances[addr] = self._balances.get(addr, 0) + amount
        logger.info(f"FUNDED {short_address(addr)} +{amount} wei | balance={self._balances[addr]}")
        return self._balances[addr]

    def set_rejecting(self, address: str, rejecting: bool = True):
        """Mark an account as refusing value (e.g. a contract without a payable receiver)."""
        addr = normalize_address(address)
        if rejecting:
            self._rejecting.add(addr)
        else:
            self._rejecting.discard(addr)

    def accepts(self, address: str) -> bool:
        return normalize_address(address) not in self._rejecting

    def transfer(self, src: str, dst: str, amount: int) -> TransferResult:
        """Move value from src to dst. All-or-nothing; check `.success`."""
        amount = _check_amount(amount)
        src = normalize_address(src)
        dst = normalize_address(dst)

        if dst in self._rejecting:
            return TransferResult(False, src, dst, amount, "recipient rejected transfer")

        available = self._balances.get(src, 0)
        if amount > available:
            return TransferResult(
                False, src, dst, amount,
                f"insufficient funds ({available} < {amount})",
            )

        if amount and src != dst:
            self._balances[src] = available - amount
            self._balances[dst] = self._balances.get(dst, 0) + amount
        return TransferResult(True, src, dst, amount)

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def snapshot(self) -> dict:
        return {
            # wei exceeds JSON-safe integers in some consumers; keep as strings
            "balances": {a: str(b) for a, b in self._balances.items() if b > 0},
            "rejecting": sorted(self._rejecting),
        }

    def restore(self, state: dict):
        self._balances = {
            normalize_address(a): int(b) for a, b in state.get("balances", {}).items()
        }
        self._rejecting = {normalize_address(a) for a in state.get("rejecting", [])}
