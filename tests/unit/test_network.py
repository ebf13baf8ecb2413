"""Tests for Coston2 network config, address helpers and FLR units."""

from decimal import Decimal

import pytest

from core.constants import NULL_ADDRESS
from core.network import (
    FLARE_COSTON2, network_from_env, wallet_add_chain_params,
    explorer_tx_url, explorer_address_url,
    normalize_address, is_null_address, short_address,
    parse_flr, format_flr,
)

FLR = 10 ** 18


class TestNetworkConfig:

    def test_coston2_defaults(self):
        assert FLARE_COSTON2.chain_id == 114
        assert FLARE_COSTON2.chain_id_hex == "0x72"
        assert FLARE_COSTON2.currency == "FLR"

    def test_rpc_override_from_env(self, monkeypatch):
        monkeypatch.setenv("COSTON2_RPC_URL", "http://localhost:9650/ext/C/rpc")
        net = network_from_env()
        assert net.rpc_url == "http://localhost:9650/ext/C/rpc"
        assert net.chain_id == 114

    def test_no_override(self, monkeypatch):
        monkeypatch.delenv("COSTON2_RPC_URL", raising=False)
        assert network_from_env() == FLARE_COSTON2

    def test_wallet_add_chain_params(self):
        params = wallet_add_chain_params()
        assert params["chainId"] == "0x72"
        assert params["nativeCurrency"] == {"name": "FLR", "symbol": "FLR", "decimals": 18}
        assert params["rpcUrls"] == [FLARE_COSTON2.rpc_url]

    def test_explorer_links(self, alice):
        assert explorer_tx_url("0xdead") == "https://coston2-explorer.flare.network/tx/0xdead"
        assert explorer_address_url(alice).endswith(f"/address/{alice}")


class TestAddresses:

    def test_normalize_checksums(self, alice):
        assert normalize_address(alice.lower()) == alice

    @pytest.mark.parametrize("value", ["", "0x123", "hello", None, 42])
    def test_normalize_rejects(self, value):
        with pytest.raises(ValueError):
            normalize_address(value)

    def test_null_address(self, alice):
        assert is_null_address(NULL_ADDRESS)
        assert not is_null_address(alice)

    def test_short_address(self, alice):
        assert short_address(alice) == f"{alice[:6]}...{alice[-4:]}"
        assert short_address("0x12") == "0x12"


class TestUnits:

    @pytest.mark.parametrize("amount, wei", [
        ("1", FLR),
        ("1.5", 3 * FLR // 2),
        (2, 2 * FLR),
        (Decimal("0.000000000000000001"), 1),
        (" 4 ", 4 * FLR),
        ("0", 0),
    ])
    def test_parse_flr(self, amount, wei):
        assert parse_flr(amount) == wei

    @pytest.mark.parametrize("amount", ["-1", "abc", "NaN", "Infinity", "0.0000000000000000001", True])
    def test_parse_flr_rejects(self, amount):
        with pytest.raises(ValueError):
            parse_flr(amount)

    @pytest.mark.parametrize("wei, text", [
        (10 * FLR, "10.0"),
        (4 * FLR // 10, "0.4"),
        (0, "0.0"),
        (1, "0.000000000000000001"),
    ])
    def test_format_flr(self, wei, text):
        assert format_flr(wei) == text


class TestAmountBounds:

    def test_largest_uint256_accepted(self):
        digits = str(2 ** 256 - 1)
        assert parse_flr(digits[:-18] + "." + digits[-18:]) == 2 ** 256 - 1

    def test_above_uint256_rejected(self):
        digits = str(2 ** 256)
        with pytest.raises(ValueError, match="too large"):
            parse_flr(digits[:-18] + "." + digits[-18:])

    @pytest.mark.parametrize("amount", ["1e100", "1e999999", "9" * 200])
    def test_huge_amounts_raise_value_error(self, amount):
        with pytest.raises(ValueError):
            parse_flr(amount)

    def test_digits_beyond_working_precision_rejected(self):
        with pytest.raises(ValueError):
            parse_flr("1." + "0" * 90 + "1")
