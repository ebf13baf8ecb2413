"""
Vault - Owner-Gated Native Value Holder

Manages one vault deployment:
- Anyone can deposit (positive value only)
- Only the owner can withdraw, withdraw everything, or hand over ownership
- Balance is the vault account's balance in the Ledger, not a counter
- Bare transfers to the vault account are accepted and reported as deposits
- Every success emits a notification; failures leave no trace

Ordering discipline for withdrawals:
  1. owner check
  2. recipient check
  3. positive amount (withdraw) / non-empty vault (withdraw_all)
  4. sufficiency check
  5. transfer attempt, success flag verified
  6. notification

Designed for: owner-gated testnet vault
"""

import os
import json
import time
import logging
import tempfile
import threading
from pathlib import Path
from typing import Optional

import rlp
from eth_utils import keccak, to_checksum_address

from .constants import NULL_ADDRESS
from .errors import (
    Unauthorized, InvalidRecipient, InsufficientBalance, NoBalance,
    ZeroValue, TransferFailed, InsufficientFunds, InvalidSender,
)
from .events import EventLog, EventName
from .ledger import Ledger
from .network import normalize_address, short_address, format_flr

logger = logging.getLogger("flarevault.vault")


def contract_address(deployer: str, nonce: int = 0) -> str:
    """CREATE address: keccak256(rlp([sender, nonce]))[12:]."""
    sender = bytes.fromhex(normalize_address(deployer)[2:])
    raw = rlp.encode([sender, nonce])
    return to_checksum_address(keccak(raw)[-20:])


def _check_wei(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"invalid amount: {amount!r} (must be a non-negative integer of wei)")
    return amount


class Vault:
    """
    Single-owner vault over a shared Ledger.

    Every mutating call holds the state lock from first check to last effect,
    so concurrent dispatch (server worker threads) still sees each call as one
    atomic step:

        vault.deposit(sender, 10 * 10**18)
        vault.withdraw(owner, recipient, 4 * 10**18)
    """

    def __init__(self, owner: str, address: Optional[str] = None,
                 ledger: Optional[Ledger] = None, events: Optional[EventLog] = None):
        owner = normalize_address(owner)
        if owner == NULL_ADDRESS:
            raise InvalidRecipient("owner cannot be the null address")

        self._owner: str = owner
        self.address: str = normalize_address(address) if address else contract_address(owner)
        self.ledger: Ledger = ledger if ledger is not None else Ledger()
        self.events: EventLog = events if events is not None else EventLog()
        self.created_at: float = time.time()

        # Reentrant: event listeners may call back into reads or save_state()
        self._state_lock = threading.RLock()

        logger.info(f"Vault ready at {self.address} | owner={self._owner}")

    # ============================================================
    # READS
    # ============================================================

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def balance(self) -> int:
        return self.ledger.balance_of(self.address)

    def get_owner(self) -> str:
        return self._owner

    def get_balance(self) -> int:
        """Current balance in wei. Never fails."""
        return self.ledger.balance_of(self.address)

    def is_owner(self, caller: str) -> bool:
        try:
            return normalize_address(caller) == self._owner
        except ValueError:
            return False

    # ============================================================
    # INCOME
    # ============================================================

    def deposit(self, sender: str, value: int):
        """Accept value from anyone. Rejects zero value."""
        value = _check_wei(value)
        sender = normalize_address(sender)
        with self._state_lock:
            if value == 0:
                raise ZeroValue("deposit requires a positive value")
            self._credit(sender, value)
            self.events.emit(EventName.DEPOSITED, {"from": sender, "amount": value})
            logger.info(
                f"DEPOSITED {format_flr(value)} FLR from {short_address(sender)} "
                f"| balance={format_flr(self.balance)} FLR"
            )

    def receive(self, sender: str, value: int):
        """
        Catch-all for bare transfers into the vault account.
        Positive value is reported as a deposit; zero value is a no-op.
        """
        value = _check_wei(value)
        sender = normalize_address(sender)
        with self._state_lock:
            if value == 0:
                return
            self._credit(sender, value)
            self.events.emit(EventName.DEPOSITED, {"from": sender, "amount": value})
            logger.info(f"RECEIVED {format_flr(value)} FLR (bare transfer) from {short_address(sender)}")

    def _credit(self, sender: str, value: int):
        if sender == self.address:
            raise InvalidSender("the vault cannot deposit into itself")
        result = self.ledger.transfer(sender, self.address, value)
        if not result.success:
            raise InsufficientFunds(f"insufficient funds for this transaction: {result.error}")

    # ============================================================
    # OWNER-ONLY
    # ============================================================

    def _require_owner(self, caller: str):
        if not self.is_owner(caller):
            raise Unauthorized(f"{caller} is not the vault owner")

    def _require_recipient(self, to: str) -> str:
        to = normalize_address(to)
        if to == NULL_ADDRESS:
            raise InvalidRecipient("recipient cannot be the null address")
        if to == self.address:
            raise InvalidRecipient("recipient cannot be the vault itself")
        return to

    def withdraw(self, caller: str, to: str, amount: int):
        """Send `amount` wei to `to`. Owner only."""
        with self._state_lock:
            self._require_owner(caller)
            to = self._require_recipient(to)
            amount = _check_wei(amount)
            if amount == 0:
                raise ZeroValue("withdrawal requires a positive amount")
            self._withdraw_locked(to, amount)

    def withdraw_all(self, caller: str, to: str):
        """Send the whole balance observed now to `to`. Owner only."""
        with self._state_lock:
            self._require_owner(caller)
            to = self._require_recipient(to)
            amount = self.balance
            if amount == 0:
                raise NoBalance("vault is empty")
            self._withdraw_locked(to, amount)

    def _withdraw_locked(self, to: str, amount: int):
        balance = self.balance
        if amount > balance:
            raise InsufficientBalance(
                f"requested {format_flr(amount)} FLR, vault holds {format_flr(balance)} FLR"
            )

        result = self.ledger.transfer(self.address, to, amount)
        if not result.success:
            logger.warning(f"WITHDRAW FAILED: {format_flr(amount)} FLR -> {short_address(to)} ({result.error})")
            raise TransferFailed(f"transfer to {to} failed: {result.error}")

        self.events.emit(EventName.WITHDRAWN, {"to": to, "amount": amount})
        logger.info(
            f"WITHDRAWN {format_flr(amount)} FLR to {short_address(to)} "
            f"| balance={format_flr(self.balance)} FLR"
        )

    def transfer_ownership(self, caller: str, new_owner: str):
        """Hand the vault to `new_owner`. Owner only."""
        with self._state_lock:
            self._require_owner(caller)
            new_owner = normalize_address(new_owner)
            if new_owner == NULL_ADDRESS:
                raise InvalidRecipient("new owner cannot be the null address")
            previous = self._owner
            self._owner = new_owner
            self.events.emit(EventName.OWNER_CHANGED, {"oldOwner": previous, "newOwner": new_owner})
            logger.warning(f"OWNER CHANGED: {previous} -> {new_owner}")

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def save_state(self, path: str = "data/vault_state.json"):
        """
        Persist owner, address, ledger and recent events.
        Atomic: temp file in the same directory, then rename.
        """
        with self._state_lock:
            state = {
                "owner": self._owner,
                "address": self.address,
                "created_at": self.created_at,
                "ledger": self.ledger.snapshot(),
                "events": self.events.snapshot(),
                "saved_at": time.time(),
            }

        try:
            p = Path(path)
            p.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=str(p.parent), suffix=".tmp", prefix="vault_state_"
            )
            try:
                with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                    json.dump(state, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, str(p))
                logger.debug(f"Vault state saved ({len(self.events)} events)")
            except Exception:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except Exception as e:
            logger.error(f"Failed to save vault state: {e}")

    def load_state(self, path: str = "data/vault_state.json") -> bool:
        """
        Restore state saved by save_state().
        Returns True if state was loaded, False if missing or unreadable.
        """
        p = Path(path)
        if not p.exists():
            logger.info("No vault state file found, starting fresh")
            return False

        try:
            with open(p, "r", encoding="utf-8") as f:
                state = json.load(f)

            owner = normalize_address(state["owner"])
            if owner == NULL_ADDRESS:
                raise ValueError("stored owner is the null address")
            address = normalize_address(state["address"])

            ledger = Ledger()
            ledger.restore(state.get("ledger", {}))
            staged = EventLog()
            staged.restore(state.get("events", {}))
            created_at = float(state.get("created_at", self.created_at))

            # Everything parsed; only now touch the live vault
            with self._state_lock:
                self._owner = owner
                self.address = address
                self.created_at = created_at
                self.ledger = ledger
                self.events.restore(state.get("events", {}))

            logger.info(
                f"Vault state RESTORED: owner={owner} balance={format_flr(self.balance)} FLR, "
                f"{len(self.events)} events"
            )
            return True

        except Exception as e:
            logger.error(f"Failed to load vault state: {e}")
            return False

    # ============================================================
    # STATUS
    # ============================================================

    def get_status(self) -> dict:
        balance = self.balance
        return {
            "address": self.address,
            "owner": self._owner,
            "balance_wei": str(balance),
            "balance": format_flr(balance),
            "event_count": len(self.events),
            "created_at": self.created_at,
        }
