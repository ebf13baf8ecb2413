"""
Deploy SimpleFlareWallet Contract

Compiles contracts/SimpleFlareWallet.sol and deploys it to Flare Coston2.
Handles: compile → write artifacts → deploy → log → save config.

Usage:
    python scripts/deploy_vault.py                  # Compile + deploy
    python scripts/deploy_vault.py --compile-only   # Write artifacts only
    python scripts/deploy_vault.py --dry-run        # Simulate only

Prerequisites:
    pip install web3 py-solc-x python-dotenv
    The script auto-installs the Solidity compiler on first run.

Artifacts land in artifacts/ (contract-abi.json, contract-info.json); the
deployed address is saved to data/vault_config.json.
"""

import os
import sys
import json
import time
import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

load_dotenv(ROOT / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("flarevault.deploy")

from core.constants import VAULT_RULES  # noqa: E402
from core.network import network_from_env, explorer_address_url, explorer_tx_url  # noqa: E402

CONTRACT_NAME = "SimpleFlareWallet"
SOLC_VERSION = "0.8.20"
SOURCE_PATH = ROOT / "contracts" / f"{CONTRACT_NAME}.sol"
ARTIFACTS_DIR = ROOT / "artifacts"


# ============================================================
# COMPILE
# ============================================================

def write_artifacts(abi: list, bytecode: str, artifacts_dir: Path = ARTIFACTS_DIR):
    """ABI for the frontends + full info (abi, bytecode, name) for deploys."""
    artifacts_dir.mkdir(parents=True, exist_ok=True)
    abi_path = artifacts_dir / "contract-abi.json"
    with open(abi_path, "w") as f:
        json.dump(abi, f, indent=2)
    logger.info(f"ABI generated at {abi_path}")

    info_path = artifacts_dir / "contract-info.json"
    with open(info_path, "w") as f:
        json.dump({"abi": abi, "bytecode": bytecode, "contractName": CONTRACT_NAME}, f, indent=2)
    logger.info(f"Contract info saved at {info_path}")


def load_artifacts(artifacts_dir: Path = ARTIFACTS_DIR):
    """Return (abi, bytecode) from contract-info.json, or None."""
    info_path = artifacts_dir / "contract-info.json"
    if not info_path.exists():
        return None
    with open(info_path, "r") as f:
        info = json.load(f)
    if not info.get("bytecode"):
        return None
    return info["abi"], info["bytecode"]


def compile_contract(force: bool = False) -> tuple[list, str]:
    """
    Compile SimpleFlareWallet.sol and return (abi, bytecode).
    Uses py-solc-x; reuses artifacts/contract-info.json unless force=True.
    """
    if not force:
        cached = load_artifacts()
        if cached:
            logger.info("Using pre-compiled artifacts from artifacts/contract-info.json")
            return cached

    if not SOURCE_PATH.exists():
        logger.error(f"Contract source not found: {SOURCE_PATH}")
        sys.exit(1)

    import solcx

    try:
        solcx.get_solc_version()
    except Exception:
        logger.info(f"Installing Solidity compiler {SOLC_VERSION}...")
        solcx.install_solc(SOLC_VERSION)

    logger.info(f"Compiling {SOURCE_PATH.name}...")
    try:
        compiled = solcx.compile_source(
            SOURCE_PATH.read_text(encoding="utf-8"),
            output_values=["abi", "bin"],
            solc_version=SOLC_VERSION,
        )
    except Exception as e:
        logger.error(f"Compilation failed: {e}")
        sys.exit(1)

    contract_key = next((k for k in compiled if k.endswith(f":{CONTRACT_NAME}")), None)
    if not contract_key:
        logger.error(f"Contract {CONTRACT_NAME} not found in compilation output")
        sys.exit(1)

    abi = compiled[contract_key]["abi"]
    bytecode = f"0x{compiled[contract_key]['bin']}"
    write_artifacts(abi, bytecode)
    return abi, bytecode


# ============================================================
# DEPLOY
# ============================================================

def deploy(dry_run: bool = False):
    """Deploy SimpleFlareWallet to Coston2. The deployer becomes the owner."""
    from web3 import Web3

    network = network_from_env()

    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        logger.error("PRIVATE_KEY not set in .env")
        sys.exit(1)

    w3 = Web3(Web3.HTTPProvider(network.rpc_url))
    if not w3.is_connected():
        logger.error(f"Cannot connect to {network.rpc_url}")
        sys.exit(1)

    logger.info(f"Connected to {network.name} (chain_id={network.chain_id})")

    account = w3.eth.account.from_key(private_key)
    deployer = account.address
    balance_flr = w3.from_wei(w3.eth.get_balance(deployer), "ether")
    logger.info(f"Deployer (= owner): {deployer}")
    logger.info(f"Native balance: {balance_flr:.6f} {network.currency}")

    if balance_flr < 0.01:
        logger.error(f"Insufficient {network.currency} for gas. Use the Coston2 faucet first.")
        sys.exit(1)

    abi, bytecode = compile_contract()

    if dry_run:
        logger.info("DRY RUN, skipping actual deployment")
        return None

    contract = w3.eth.contract(abi=abi, bytecode=bytecode)
    tx = contract.constructor().build_transaction({
        "from": deployer,
        "nonce": w3.eth.get_transaction_count(deployer),
        "gasPrice": w3.eth.gas_price,
        "chainId": network.chain_id,
    })

    gas_estimate = w3.eth.estimate_gas(tx)
    tx["gas"] = int(gas_estimate * VAULT_RULES.GAS_BUFFER_RATIO)
    logger.info(f"Gas estimate: {gas_estimate} (using {tx['gas']} with buffer)")

    signed = w3.eth.account.sign_transaction(tx, private_key)
    tx_hash = w3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
    logger.info(f"TX sent: {explorer_tx_url(tx_hash, network)}")
    logger.info("Waiting for confirmation...")

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=120)
    if receipt["status"] != 1:
        logger.error(f"Deployment FAILED! TX: {tx_hash}")
        sys.exit(1)

    vault_address = receipt["contractAddress"]
    logger.info(f"{CONTRACT_NAME} deployed at: {vault_address}")
    logger.info(f"Explorer: {explorer_address_url(vault_address, network)}")

    config = {
        "network": network.name,
        "chain_id": network.chain_id,
        "contract_address": vault_address,
        "owner": deployer,
        "deployed_at": time.time(),
        "tx_hash": tx_hash,
        "block_number": receipt["blockNumber"],
    }
    config_path = ROOT / "data" / "vault_config.json"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        json.dump(config, f, indent=2)
    logger.info(f"Config saved to {config_path}")

    return vault_address


# ============================================================
# CLI
# ============================================================

def main():
    parser = argparse.ArgumentParser(description=f"Compile and deploy {CONTRACT_NAME}")
    parser.add_argument("--dry-run", action="store_true",
                        help="Compile and check the deployer without sending transactions")
    parser.add_argument("--compile-only", action="store_true",
                        help="Compile and write artifacts/, no network access")
    args = parser.parse_args()

    if args.compile_only:
        compile_contract(force=True)
        return

    address = deploy(dry_run=args.dry_run)
    if address:
        logger.info("=" * 50)
        logger.info("DEPLOYMENT COMPLETE")
        logger.info(f"Contract: {address}")
        logger.info(f"Add to .env: CONTRACT_ADDRESS={address}")
        logger.info("=" * 50)


if __name__ == "__main__":
    main()
