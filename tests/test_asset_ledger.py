import pytest

from protocol.types.common import (
    InsufficientAllowance,
    InsufficientFunds,
    InvalidAmount,
    VaultEmptied,
    VaultInsufficientFunds,
    VaultUnfunded,
)
from stakepool.core.asset_ledger import TokenLedger
from stakepool.core.vault import VaultGuard
from stakepool.storage.db import StorageDB


@pytest.fixture
def tokens():
    ledger = TokenLedger()
    ledger.mint("alice", 1000)
    return ledger


def test_mint_and_send(tokens):
    tokens.send("alice", "bob", 300)
    assert tokens.balance_of("alice") == 700
    assert tokens.balance_of("bob") == 300
    assert tokens.total_supply == 1000


def test_send_more_than_balance_fails(tokens):
    with pytest.raises(InsufficientFunds):
        tokens.send("alice", "bob", 1001)
    assert tokens.balance_of("alice") == 1000
    assert tokens.balance_of("bob") == 0


def test_transfer_from_consumes_allowance(tokens):
    tokens.approve("alice", "pool", 500)
    tokens.transfer_from("alice", "pool", 200)

    assert tokens.balance_of("pool") == 200
    assert tokens.allowance("alice", "pool") == 300


def test_transfer_from_without_allowance_fails(tokens):
    tokens.approve("alice", "pool", 100)
    with pytest.raises(InsufficientAllowance):
        tokens.transfer_from("alice", "pool", 101)
    assert tokens.balance_of("alice") == 1000
    assert tokens.allowance("alice", "pool") == 100


def test_negative_amounts_rejected(tokens):
    with pytest.raises(InvalidAmount):
        tokens.approve("alice", "pool", -1)
    with pytest.raises(InvalidAmount):
        tokens.mint("alice", -1)
    with pytest.raises(InvalidAmount):
        tokens.send("alice", "bob", -1)


def test_balances_persist_in_db(tmp_path):
    db = StorageDB(str(tmp_path / "tokens.db"))
    ledger = TokenLedger(db)
    ledger.mint("alice", 10**24)
    ledger.approve("alice", "pool", 10**20)
    ledger.transfer_from("alice", "pool", 10**19)

    reloaded = TokenLedger(db)
    assert reloaded.balance_of("alice") == 10**24 - 10**19
    assert reloaded.balance_of("pool") == 10**19
    assert reloaded.allowance("alice", "pool") == 10**20 - 10**19
    assert reloaded.total_supply == 10**24
    db.close()


# --- Vault guard ---

def test_vault_checks(tokens):
    vault = VaultGuard(tokens, "pool")

    with pytest.raises(VaultUnfunded):
        vault.check_funding_present()
    with pytest.raises(VaultEmptied):
        vault.check_vault_not_empty()

    tokens.send("alice", "pool", 50)
    vault.check_funding_present()
    vault.check_vault_not_empty()
    vault.check_sufficient_for_payout(50)

    with pytest.raises(VaultInsufficientFunds) as exc:
        vault.check_sufficient_for_payout(51)
    assert exc.value.to_dict()["details"] == {"requested": "51", "vault_balance": "50"}
