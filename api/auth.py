"""
Wallet Signature Authentication: caller identity for vault routes.

Verifies that the caller owns a wallet by checking a signed message.
Uses EIP-191 personal_sign (what browser wallets sign by default).

Flow:
  1. Frontend: wallet signs "flare-vault:<action>:<param>...:<timestamp>"
     (params are the request's own values: checksummed addresses, wei amounts)
  2. Backend: rebuild the message from the request, recover the signer
  3. Backend: refuse stale timestamps and messages already used, use the signer as the caller

No passwords. No usernames. Your wallet IS your identity.
"""

import time
import logging
import threading
from typing import Optional, Sequence

from core.constants import VAULT_RULES

logger = logging.getLogger("flarevault.api.auth")

MESSAGE_PREFIX = "flare-vault"


class AuthError(Exception):
    """Signature missing, invalid, stale or already used."""
    pass


def create_auth_message(action: str, timestamp: Optional[int] = None,
                        params: Sequence = ()) -> str:
    """
    Generate the message a wallet must sign for `action`.

    Example:
        create_auth_message("withdraw", 1700000000, [to, str(amount_wei)])
        -> "flare-vault:withdraw:0xC3c3...:4000000000000000000:1700000000"
    """
    ts = timestamp if timestamp is not None else int(time.time())
    return ":".join([MESSAGE_PREFIX, action, *[str(p) for p in params], str(ts)])


def verify_signature(message: str, signature: str) -> Optional[str]:
    """
    Recover the signer address from an EIP-191 personal_sign signature.

    Returns:
        The checksummed address of the signer, or None if invalid.
    """
    try:
        from eth_account.messages import encode_defunct
        from eth_account import Account

        msg = encode_defunct(text=message)
        return Account.recover_message(msg, signature=signature)
    except Exception as e:
        logger.warning(f"Signature verification failed: {e}")
        return None


class UsedSignatures:
    """
    Signed messages already accepted, keyed by (signer, message).
    Entries are kept until their timestamp leaves the accepted window.
    """

    def __init__(self, max_age: int = VAULT_RULES.SIGNATURE_MAX_AGE_SECONDS):
        self._max_age = max_age
        self._seen: dict[tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def claim(self, signer: str, message: str, timestamp: int, now: float) -> bool:
        """Record a use. False if the same signer already used this message."""
        key = (signer, message)
        with self._lock:
            self._seen = {k: exp for k, exp in self._seen.items() if exp >= now}
            if key in self._seen:
                return False
            self._seen[key] = timestamp + self._max_age
            return True


def authenticate(action: str, signature: Optional[str], timestamp: Optional[int],
                 params: Sequence = (), now: Optional[float] = None,
                 used: Optional[UsedSignatures] = None) -> str:
    """
    Return the wallet that signed `action` with `params` at `timestamp`.
    Raises AuthError when the signature is missing, invalid, too old or
    (with `used`) already consumed.
    """
    if not signature or timestamp is None:
        raise AuthError("signature and timestamp required")

    current = now if now is not None else time.time()
    if abs(current - timestamp) > VAULT_RULES.SIGNATURE_MAX_AGE_SECONDS:
        raise AuthError("signature expired")

    message = create_auth_message(action, timestamp, params)
    signer = verify_signature(message, signature)
    if not signer:
        raise AuthError("invalid signature")

    if used is not None and not used.claim(signer, message, timestamp, current):
        logger.warning(f"Replayed signature refused: {action} by {signer}")
        raise AuthError("signature already used")
    return signer
