"""
Vault error taxonomy.

Every failure is local and synchronous: the whole operation is abandoned and
no partial state change persists. `kind` is the stable name reported to
callers (API bodies, logs).
"""


class VaultError(Exception):
    """Base class for every rejected vault operation."""
    kind = "VaultError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class Unauthorized(VaultError):
    """Caller is not the current owner on a restricted operation."""
    kind = "Unauthorized"


class InvalidRecipient(VaultError):
    """Target identity is the null address."""
    kind = "InvalidRecipient"


class InsufficientBalance(VaultError):
    """Requested withdrawal exceeds the vault balance."""
    kind = "InsufficientBalance"


class NoBalance(VaultError):
    """withdraw_all on an empty vault."""
    kind = "NoBalance"


class ZeroValue(VaultError):
    """Deposit (or withdrawal) of nothing."""
    kind = "ZeroValue"


class TransferFailed(VaultError):
    """Recipient declined or could not receive the transfer."""
    kind = "TransferFailed"


class InsufficientFunds(VaultError):
    """Sender account cannot cover the value it attached (ledger level)."""
    kind = "InsufficientFunds"


class InvalidSender(VaultError):
    """The vault account itself cannot be the source of a deposit."""
    kind = "InvalidSender"
