"""Shared fixtures for the flare-vault test suite."""

import pytest
from web3 import Web3

from core.ledger import Ledger
from core.vault import Vault

FLR = 10 ** 18


def _addr(byte: str) -> str:
    return Web3.to_checksum_address("0x" + byte * 20)


@pytest.fixture
def alice() -> str:
    """Vault creator / owner."""
    return _addr("a1")


@pytest.fixture
def bob() -> str:
    return _addr("b2")


@pytest.fixture
def carol() -> str:
    return _addr("c3")


@pytest.fixture
def dave() -> str:
    return _addr("d4")


@pytest.fixture
def ledger(alice, bob) -> Ledger:
    lg = Ledger()
    lg.fund(alice, 100 * FLR)
    lg.fund(bob, 100 * FLR)
    return lg


@pytest.fixture
def vault(alice, ledger) -> Vault:
    return Vault(owner=alice, ledger=ledger)
