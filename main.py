"""
flare-vault - main entry point

Initializes the ledger, the vault and the optional chain client, restores
saved state, starts the server.

Usage:
    python main.py              # Start the vault API
    VAULT_OWNER=0x... python main.py
"""

import os
import sys
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class _SecretMaskingFilter(logging.Filter):
    """Redact 64-char hex strings (private keys) from all log output."""
    import re as _re
    _PATTERN = _re.compile(r'(?<![0-9a-fA-F])([0-9a-fA-F]{64})(?![0-9a-fA-F])')

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = self._PATTERN.sub('[REDACTED]', record.msg)
        if record.args:
            try:
                formatted = record.getMessage()
                if self._PATTERN.search(formatted):
                    record.msg = self._PATTERN.sub('[REDACTED]', formatted)
                    record.args = None
            except Exception:
                pass
        return True


_mask_filter = _SecretMaskingFilter()
for _h in logging.root.handlers:
    _h.addFilter(_mask_filter)

logger = logging.getLogger("flarevault.main")


# ============================================================
# MODULE IMPORTS
# ============================================================

from core.vault import Vault
from core.chain import ChainClient
from core.network import network_from_env, normalize_address
from api.server import create_app


STATE_PATH = os.getenv("VAULT_STATE_PATH", "data/vault_state.json")


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _resolve_owner() -> str:
    """VAULT_OWNER, else the address of PRIVATE_KEY."""
    owner = os.getenv("VAULT_OWNER", "")
    if owner:
        return normalize_address(owner)

    private_key = os.getenv("PRIVATE_KEY", "")
    if private_key:
        from eth_account import Account
        return Account.from_key(private_key).address

    logger.error("Set VAULT_OWNER (or PRIVATE_KEY) to create the vault")
    sys.exit(1)


def _build_chain_client():
    """Chain client for the deployed contract, or None when disabled/unreachable."""
    if not _env_flag("CHAIN_ENABLED", "true"):
        return None
    client = ChainClient(
        network=network_from_env(),
        contract_address=os.getenv("CONTRACT_ADDRESS") or None,
        private_key=os.getenv("PRIVATE_KEY", ""),
    )
    try:
        if client.connect():
            return client
    except Exception as e:
        logger.warning(f"Chain client disabled: {e}")
    return None


# ============================================================
# GLOBALS (singleton instances)
# ============================================================

vault = Vault(owner=_resolve_owner(), address=os.getenv("VAULT_ADDRESS") or None)
vault.load_state(STATE_PATH)
chain_client = _build_chain_client()


@asynccontextmanager
async def lifespan(app):
    """Startup and shutdown."""
    logger.info("=" * 60)
    logger.info(f"Vault:   {vault.address}")
    logger.info(f"Owner:   {vault.owner}")
    logger.info(f"Balance: {vault.get_status()['balance']} FLR")
    logger.info(f"Chain:   {chain_client.contract_address if chain_client else 'disabled'}")
    logger.info("=" * 60)

    yield

    # Shutdown
    vault.save_state(STATE_PATH)
    logger.info("Vault state saved. Goodbye.")


def create_vault_app():
    """Create the fully wired FastAPI app."""
    app = create_app(
        vault=vault,
        chain_client=chain_client,
        require_signatures=_env_flag("REQUIRE_SIGNATURES"),
        faucet_enabled=_env_flag("FAUCET_ENABLED", "true"),
        state_path=STATE_PATH,
        network=chain_client.network if chain_client else network_from_env(),
    )
    app.router.lifespan_context = lifespan
    return app


# ============================================================
# ENTRY POINT
# ============================================================

app = create_vault_app()


if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("DEV", "").lower() in ("1", "true", "yes")

    logger.info(f"Starting server on {host}:{port} (reload={reload})")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=LOG_LEVEL.lower(),
    )
