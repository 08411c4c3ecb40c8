# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, Optional
from .economic_model import EmissionConfig, EMISSION_CONFIGS
from ..crypto.keys import public_key_from_private
from ..crypto.addresses import address_from_pubkey

# Global Constants
DENOM = "hmc"
DECIMALS = 18
ADDRESS_PREFIX = "sp"


class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 pool_address: str,
                 emission: EmissionConfig,
                 genesis_supply: int,
                 vault_funding: int,
                 operator_address: Optional[str] = None,
                 operator_priv_key: Optional[str] = None,
                 address_prefix: str = ADDRESS_PREFIX,
                 denom: str = DENOM,
                 decimals: int = DECIMALS):
        self.network_id = network_id
        # Account that custodies the pool's assets on the asset ledger.
        # Not a bech32 address, so no key can sign for it.
        self.pool_address = pool_address
        self.emission = emission
        self.address_prefix = address_prefix
        # Well-known key for local networks only
        self.operator_priv_key = operator_priv_key
        if operator_address is None and operator_priv_key:
            operator_address = address_from_pubkey(
                public_key_from_private(bytes.fromhex(operator_priv_key)), address_prefix
            )
        # Only account allowed to update the reward rate (when restricted).
        # None until the node is started with an operator.
        self.operator_address = operator_address
        # Minted to the operator by `init`
        self.genesis_supply = genesis_supply
        # Moved from operator into the vault by `init`
        self.vault_funding = vault_funding
        self.denom = denom
        self.decimals = decimals


NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        pool_address="pool",
        emission=EMISSION_CONFIGS["devnet"],
        genesis_supply=10_000 * 10**DECIMALS,
        vault_funding=5_000 * 10**DECIMALS,
        operator_priv_key="4f3edf982522b4e51b7e8b5f2f9c4d1d7a9e5f8c2b6d4e1a3c5b7d9e0f1a2b3c",
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        pool_address="pool",
        emission=EMISSION_CONFIGS["testnet"],
        genesis_supply=1_000_000 * 10**DECIMALS,
        vault_funding=100_000 * 10**DECIMALS,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        pool_address="pool",
        emission=EMISSION_CONFIGS["mainnet"],
        genesis_supply=0,
        vault_funding=0,
    ),
}

# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
