"""
Tests for the database-backed custody ledger.
"""
import pytest

from core.exceptions import (
    AccountNotFound,
    InsufficientFunds,
    InvalidTransferAmount,
    TransferNotAuthorized,
)
from services.ledger import DatabaseLedger


@pytest.fixture
def ledger(db):
    return DatabaseLedger(db)


def test_transfer_moves_balance(db, ledger, open_account, balance_of):
    alice = open_account("alice", 100)
    bob = open_account("bob", 0)

    ledger.transfer(alice.id, bob.id, 40, authority="alice")
    db.commit()

    assert balance_of(alice.id) == 60
    assert balance_of(bob.id) == 40


def test_insufficient_funds_changes_nothing(db, ledger, open_account, balance_of):
    alice = open_account("alice", 10)
    bob = open_account("bob", 0)

    with pytest.raises(InsufficientFunds) as exc_info:
        ledger.transfer(alice.id, bob.id, 11)

    assert exc_info.value.balance == 10
    assert exc_info.value.amount == 11
    db.rollback()
    assert balance_of(alice.id) == 10
    assert balance_of(bob.id) == 0


def test_wrong_authority(ledger, open_account):
    alice = open_account("alice", 100)
    bob = open_account("bob", 0)

    with pytest.raises(TransferNotAuthorized):
        ledger.transfer(alice.id, bob.id, 10, authority="bob")


@pytest.mark.parametrize("amount", [0, -1, 1.5, True])
def test_invalid_amount(ledger, open_account, amount):
    alice = open_account("alice", 100)
    bob = open_account("bob", 0)

    with pytest.raises(InvalidTransferAmount):
        ledger.transfer(alice.id, bob.id, amount)


def test_same_account(ledger, open_account):
    alice = open_account("alice", 100)
    with pytest.raises(InvalidTransferAmount):
        ledger.transfer(alice.id, alice.id, 10)


def test_missing_account(ledger, open_account):
    alice = open_account("alice", 100)

    with pytest.raises(AccountNotFound):
        ledger.transfer(alice.id, "missing", 10)
    with pytest.raises(AccountNotFound):
        ledger.transfer("missing", alice.id, 10)


def test_get_or_open_account_reuses_existing(db, ledger, open_account):
    platform = open_account("platform", 5)
    assert ledger.get_or_open_account("platform").id == platform.id

    fresh = ledger.get_or_open_account("someone-new")
    assert fresh.owner == "someone-new"
    assert fresh.balance == 0


def test_custody_account_only_released_by_settlement(db, ledger, open_account, balance_of):
    pool = ledger.open_account("pool:ABCDEF", 100, custody=True)
    mallory = open_account("mallory", 0)
    db.commit()

    with pytest.raises(TransferNotAuthorized):
        ledger.transfer(pool.id, mallory.id, 100)
    with pytest.raises(TransferNotAuthorized):
        ledger.transfer(pool.id, mallory.id, 100, authority="pool:ABCDEF")
    db.rollback()
    assert balance_of(pool.id) == 100

    ledger.transfer(pool.id, mallory.id, 100, release_custody=True)
    assert balance_of(mallory.id) == 100


def test_get_or_open_account_skips_custody_accounts(ledger):
    pool = ledger.open_account("pool:ABCDEF", custody=True)

    account = ledger.get_or_open_account("pool:ABCDEF")
    assert account.id != pool.id
    assert account.is_custody is False
