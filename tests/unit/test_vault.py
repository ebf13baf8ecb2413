"""Tests for Vault, the owner-gated withdrawal engine.

Coverage:
- Deposits (anyone, positive value only) and bare transfers
- Owner-only withdraw / withdraw_all / transfer_ownership
- Check-then-transfer ordering, rollback on refused transfers
- Non-replay of sequential identical withdrawals
- Concurrent dispatch (single-writer lock)
- End-to-end scenario
"""

import threading

import pytest

from core.constants import NULL_ADDRESS
from core.errors import (
    Unauthorized, InvalidRecipient, InsufficientBalance, NoBalance,
    ZeroValue, TransferFailed, InsufficientFunds, InvalidSender,
)
from core.events import EventName
from core.ledger import Ledger
from core.vault import Vault, contract_address

FLR = 10 ** 18


def _names(vault):
    return [e.name for e in vault.events.events]


class TestCreation:

    def test_owner_is_creator_and_balance_zero(self, vault, alice):
        assert vault.owner == alice
        assert vault.get_owner() == alice
        assert vault.get_balance() == 0
        assert len(vault.events) == 0

    def test_null_owner_rejected(self):
        with pytest.raises(InvalidRecipient):
            Vault(owner=NULL_ADDRESS)

    def test_address_derived_from_creator(self, alice):
        v = Vault(owner=alice)
        assert v.address == contract_address(alice, 0)
        assert v.address != alice

    def test_lowercase_owner_is_checksummed(self, alice):
        v = Vault(owner=alice.lower())
        assert v.owner == alice


class TestDeposit:

    def test_deposit_increases_balance_and_emits(self, vault, bob, ledger):
        vault.deposit(bob, 10 * FLR)

        assert vault.get_balance() == 10 * FLR
        assert ledger.balance_of(bob) == 90 * FLR
        event = vault.events.events[-1]
        assert event.name == EventName.DEPOSITED
        assert event.args == {"from": bob, "amount": 10 * FLR}

    def test_zero_value_rejected(self, vault, bob):
        with pytest.raises(ZeroValue):
            vault.deposit(bob, 0)
        assert vault.get_balance() == 0
        assert len(vault.events) == 0

    def test_sender_without_funds(self, vault, carol):
        with pytest.raises(InsufficientFunds):
            vault.deposit(carol, 1)
        assert vault.get_balance() == 0
        assert len(vault.events) == 0

    def test_negative_or_non_integer_amount(self, vault, bob):
        with pytest.raises(ValueError):
            vault.deposit(bob, -1)
        with pytest.raises(ValueError):
            vault.deposit(bob, 1.5)
        with pytest.raises(ValueError):
            vault.deposit(bob, True)

    def test_bare_transfer_reported_as_deposit(self, vault, bob):
        vault.receive(bob, 3 * FLR)
        assert vault.get_balance() == 3 * FLR
        assert _names(vault) == [EventName.DEPOSITED]

    def test_zero_bare_transfer_is_noop(self, vault, bob):
        vault.receive(bob, 0)
        assert vault.get_balance() == 0
        assert len(vault.events) == 0

    def test_direct_ledger_credit_counts_as_balance(self, vault, ledger):
        # Value that reaches the vault account by any path is balance
        ledger.fund(vault.address, 2 * FLR)
        assert vault.get_balance() == 2 * FLR


class TestWithdraw:

    def test_owner_withdraws_exact_amount(self, vault, alice, bob, carol, ledger):
        vault.deposit(bob, 10 * FLR)
        vault.withdraw(alice, carol, 4 * FLR)

        assert vault.get_balance() == 6 * FLR
        assert ledger.balance_of(carol) == 4 * FLR
        event = vault.events.events[-1]
        assert event.name == EventName.WITHDRAWN
        assert event.args == {"to": carol, "amount": 4 * FLR}

    @pytest.mark.parametrize("amount", [1, 5 * FLR, 10 * FLR])
    def test_any_amount_up_to_balance(self, vault, alice, bob, carol, amount):
        vault.deposit(bob, 10 * FLR)
        vault.withdraw(alice, carol, amount)
        assert vault.get_balance() == 10 * FLR - amount

    def test_non_owner_unauthorized(self, vault, bob, carol):
        vault.deposit(bob, 10 * FLR)
        with pytest.raises(Unauthorized):
            vault.withdraw(bob, carol, 1 * FLR)
        assert vault.get_balance() == 10 * FLR
        assert _names(vault) == [EventName.DEPOSITED]

    def test_malformed_caller_unauthorized(self, vault, bob, carol):
        vault.deposit(bob, 1 * FLR)
        with pytest.raises(Unauthorized):
            vault.withdraw("not-an-address", carol, 1)

    def test_owner_check_precedes_balance_check(self, vault, bob, carol):
        # Empty vault + stranger: the answer is Unauthorized, not InsufficientBalance
        with pytest.raises(Unauthorized):
            vault.withdraw(bob, carol, 1 * FLR)

    def test_null_recipient(self, vault, alice, bob):
        vault.deposit(bob, 1 * FLR)
        with pytest.raises(InvalidRecipient):
            vault.withdraw(alice, NULL_ADDRESS, 1)
        assert vault.get_balance() == 1 * FLR

    def test_more_than_balance(self, vault, alice, bob, carol, ledger):
        vault.deposit(bob, 10 * FLR)
        with pytest.raises(InsufficientBalance):
            vault.withdraw(alice, carol, 10 * FLR + 1)
        assert vault.get_balance() == 10 * FLR
        assert ledger.balance_of(carol) == 0

    def test_zero_amount_rejected(self, vault, alice, bob, carol):
        vault.deposit(bob, 1 * FLR)
        with pytest.raises(ZeroValue):
            vault.withdraw(alice, carol, 0)
        assert _names(vault) == [EventName.DEPOSITED]

    def test_refused_transfer_rolls_back(self, vault, alice, bob, dave, ledger):
        vault.deposit(bob, 10 * FLR)
        ledger.set_rejecting(dave)

        with pytest.raises(TransferFailed):
            vault.withdraw(alice, dave, 4 * FLR)

        assert vault.get_balance() == 10 * FLR
        assert ledger.balance_of(dave) == 0
        assert _names(vault) == [EventName.DEPOSITED]

    def test_sequential_identical_withdrawals_recheck(self, vault, alice, bob, carol):
        vault.deposit(bob, 6 * FLR)
        vault.withdraw(alice, carol, 4 * FLR)
        with pytest.raises(InsufficientBalance):
            vault.withdraw(alice, carol, 4 * FLR)
        assert vault.get_balance() == 2 * FLR


class TestWithdrawAll:

    def test_drains_vault(self, vault, alice, bob, carol, ledger):
        vault.deposit(bob, 7 * FLR)
        vault.withdraw_all(alice, carol)

        assert vault.get_balance() == 0
        assert ledger.balance_of(carol) == 7 * FLR
        assert vault.events.events[-1].args == {"to": carol, "amount": 7 * FLR}

    def test_empty_vault(self, vault, alice, carol):
        with pytest.raises(NoBalance):
            vault.withdraw_all(alice, carol)
        assert len(vault.events) == 0

    def test_non_owner(self, vault, bob, carol):
        vault.deposit(bob, 1 * FLR)
        with pytest.raises(Unauthorized):
            vault.withdraw_all(bob, carol)
        assert vault.get_balance() == 1 * FLR

    def test_null_recipient(self, vault, alice, bob):
        vault.deposit(bob, 1 * FLR)
        with pytest.raises(InvalidRecipient):
            vault.withdraw_all(alice, NULL_ADDRESS)

    def test_refused_transfer_rolls_back(self, vault, alice, bob, dave, ledger):
        vault.deposit(bob, 3 * FLR)
        ledger.set_rejecting(dave)
        with pytest.raises(TransferFailed):
            vault.withdraw_all(alice, dave)
        assert vault.get_balance() == 3 * FLR

    def test_includes_bare_transfers(self, vault, alice, bob, carol, ledger):
        vault.deposit(bob, 1 * FLR)
        ledger.fund(vault.address, 2 * FLR)
        vault.withdraw_all(alice, carol)
        assert ledger.balance_of(carol) == 3 * FLR


class TestTransferOwnership:

    def test_new_owner_takes_over(self, vault, alice, bob, carol):
        vault.deposit(bob, 5 * FLR)
        vault.transfer_ownership(alice, carol)

        assert vault.owner == carol
        event = vault.events.events[-1]
        assert event.name == EventName.OWNER_CHANGED
        assert event.args == {"oldOwner": alice, "newOwner": carol}

        with pytest.raises(Unauthorized):
            vault.withdraw(alice, alice, 1 * FLR)
        vault.withdraw(carol, carol, 1 * FLR)
        assert vault.get_balance() == 4 * FLR

    def test_null_new_owner(self, vault, alice):
        with pytest.raises(InvalidRecipient):
            vault.transfer_ownership(alice, NULL_ADDRESS)
        assert vault.owner == alice
        assert len(vault.events) == 0

    def test_non_owner(self, vault, alice, bob):
        with pytest.raises(Unauthorized):
            vault.transfer_ownership(bob, bob)
        assert vault.owner == alice


class TestVaultOwnAddress:

    def test_vault_cannot_deposit_into_itself(self, vault, bob, ledger):
        vault.deposit(bob, 10 * FLR)
        with pytest.raises(InvalidSender):
            vault.deposit(vault.address, 5 * FLR)
        with pytest.raises(InvalidSender):
            vault.receive(vault.address, 5 * FLR)
        assert vault.get_balance() == 10 * FLR
        assert _names(vault) == [EventName.DEPOSITED]

    def test_withdraw_to_vault_itself(self, vault, alice, bob):
        vault.deposit(bob, 10 * FLR)
        with pytest.raises(InvalidRecipient):
            vault.withdraw(alice, vault.address, 4 * FLR)
        with pytest.raises(InvalidRecipient):
            vault.withdraw_all(alice, vault.address.lower())
        assert vault.get_balance() == 10 * FLR
        assert _names(vault) == [EventName.DEPOSITED]

    def test_every_withdrawal_lowers_balance(self, vault, alice, bob, carol):
        vault.deposit(bob, 10 * FLR)
        before = vault.get_balance()
        vault.withdraw(alice, carol, 3 * FLR)
        assert vault.get_balance() == before - 3 * FLR


class TestCheckOrder:

    def test_stranger_with_bad_amount_is_unauthorized(self, vault, bob, carol):
        vault.deposit(bob, 1 * FLR)
        with pytest.raises(Unauthorized):
            vault.withdraw(bob, carol, -1)
        with pytest.raises(Unauthorized):
            vault.withdraw(bob, carol, 1.5)

    def test_owner_with_bad_amount_gets_value_error(self, vault, alice, bob, carol):
        vault.deposit(bob, 1 * FLR)
        with pytest.raises(ValueError):
            vault.withdraw(alice, carol, -1)
        assert vault.get_balance() == 1 * FLR


class TestConcurrency:

    def test_parallel_withdrawals_never_overdraw(self, vault, alice, bob, carol, ledger):
        vault.deposit(bob, 10 * FLR)
        outcomes = []
        lock = threading.Lock()

        def worker():
            try:
                vault.withdraw(alice, carol, 1 * FLR)
                result = "ok"
            except InsufficientBalance:
                result = "short"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(25)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 10
        assert outcomes.count("short") == 15
        assert vault.get_balance() == 0
        assert ledger.balance_of(carol) == 10 * FLR
        assert _names(vault).count(EventName.WITHDRAWN) == 10


class TestListeners:

    def test_failing_listener_does_not_undo(self, vault, bob):
        def boom(event):
            raise RuntimeError("consumer down")

        vault.events.subscribe(boom)
        vault.deposit(bob, 1 * FLR)
        assert vault.get_balance() == 1 * FLR
        assert len(vault.events) == 1

    def test_listener_sees_post_state(self, vault, alice, bob, carol):
        seen = []
        vault.events.subscribe(lambda e: seen.append((e.name, vault.get_balance())))
        vault.deposit(bob, 2 * FLR)
        vault.withdraw(alice, carol, 1 * FLR)
        assert seen == [(EventName.DEPOSITED, 2 * FLR), (EventName.WITHDRAWN, 1 * FLR)]


def test_end_to_end_scenario(alice, bob, carol):
    """A creates; B deposits 10; A withdraws 4 to C; B fails; A drains to C."""
    ledger = Ledger()
    ledger.fund(bob, 10 * FLR)
    vault = Vault(owner=alice, ledger=ledger)
    assert (vault.owner, vault.get_balance()) == (alice, 0)

    vault.deposit(bob, 10 * FLR)
    assert vault.get_balance() == 10 * FLR
    assert vault.events.events[-1].args == {"from": bob, "amount": 10 * FLR}

    vault.withdraw(alice, carol, 4 * FLR)
    assert vault.get_balance() == 6 * FLR
    assert vault.events.events[-1].args == {"to": carol, "amount": 4 * FLR}

    with pytest.raises(Unauthorized):
        vault.withdraw(bob, carol, 1 * FLR)
    assert vault.get_balance() == 6 * FLR

    vault.withdraw_all(alice, carol)
    assert vault.get_balance() == 0
    assert vault.events.events[-1].args == {"to": carol, "amount": 6 * FLR}

    assert _names(vault) == [EventName.DEPOSITED, EventName.WITHDRAWN, EventName.WITHDRAWN]
    assert ledger.balance_of(carol) == 10 * FLR
