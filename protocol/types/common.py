from enum import Enum


class OpType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    UPDATE_REWARD_RATE = "UPDATE_REWARD_RATE"  # Operator only (when restricted)


class ProtocolError(Exception):
    pass


class ValidationError(ProtocolError):
    pass


class StakingError(ProtocolError):
    """
    Base class for pool precondition failures.

    Every staking error is raised before any state mutation, so the
    invocation aborts as a whole. `guidance` is the human-readable
    remediation shown to callers.
    """
    code = "staking_error"
    guidance = "Staking operation rejected"

    def __init__(self, guidance: str = None, **details):
        self.guidance = guidance or self.guidance
        self.details = details
        super().__init__(self.guidance)

    def to_dict(self) -> dict:
        data = {"code": self.code, "detail": self.guidance}
        if self.details:
            data["details"] = {k: str(v) for k, v in self.details.items()}
        return data


class VaultUnfunded(StakingError):
    code = "vault_unfunded"
    guidance = "Vault has ran out of funding. Please try again later"


class VaultEmptied(StakingError):
    code = "vault_emptied"
    guidance = "Vault has been emptied"


class VaultInsufficientFunds(StakingError):
    code = "vault_insufficient_funds"
    guidance = "Insufficient Value in Contract to redeem tokens. Please try again later"


class NothingStaked(StakingError):
    code = "nothing_staked"
    guidance = "Existing tokens are required in order to be able to withdraw money"


class ExceedsBalance(StakingError):
    code = "exceeds_balance"
    guidance = "Cannot redeem for more tokens than you have"


# Ledger-level name for the same failure
InsufficientBalance = ExceedsBalance


class Unauthorized(StakingError):
    code = "unauthorized"
    guidance = "Only the pool operator can update the reward rate"


class InvalidAmount(StakingError, ValidationError):
    code = "invalid_amount"
    guidance = "Amount must be a positive integer"


class ClockRegression(StakingError):
    code = "clock_regression"
    guidance = "Settlement time cannot move backwards"


class InvalidSignature(StakingError):
    code = "invalid_signature"
    guidance = "Request is not signed by the sending account"


class InvalidNonce(StakingError):
    code = "invalid_nonce"
    guidance = "Request nonce does not match the account nonce"


class AssetLedgerError(ProtocolError):
    code = "asset_ledger_error"


class InsufficientFunds(AssetLedgerError):
    code = "insufficient_funds"


class InsufficientAllowance(AssetLedgerError):
    code = "insufficient_allowance"
