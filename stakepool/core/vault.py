from protocol.types.common import VaultUnfunded, VaultEmptied, VaultInsufficientFunds
from .asset_ledger import AssetLedger


class VaultGuard:
    """
    Solvency checks against the pool's custody on the asset ledger.

    The internal ledger can promise more than the vault holds (accrued
    rewards are never funded automatically), so payouts are checked against
    real custody, not against `total_staked`.
    """

    def __init__(self, assets: AssetLedger, pool_address: str):
        self.assets = assets
        self.pool_address = pool_address

    def vault_balance(self) -> int:
        return self.assets.balance_of(self.pool_address)

    def check_funding_present(self):
        """Deposits need a pool that has received reward funding."""
        if self.vault_balance() == 0:
            raise VaultUnfunded()

    def check_vault_not_empty(self):
        """Same condition as check_funding_present, surfaced for withdrawals."""
        if self.vault_balance() == 0:
            raise VaultEmptied()

    def check_sufficient_for_payout(self, amount: int):
        held = self.vault_balance()
        if held < amount:
            raise VaultInsufficientFunds(requested=amount, vault_balance=held)
