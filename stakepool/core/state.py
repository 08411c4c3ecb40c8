from typing import Dict, List, Optional
import logging
from protocol.types.pool import GlobalPoolState, AccountState
from protocol.crypto.hash import sha256, merkle_root
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

POOL_KEY = "pool"
ACCOUNT_PREFIX = "acc:"


class PoolState:
    def __init__(self, db: StorageDB, pool: GlobalPoolState = None, accounts: Dict[str, AccountState] = None):
        self.db = db
        self.pool: GlobalPoolState = pool if pool is not None else GlobalPoolState()
        # Cache for modified/accessed accounts: address -> AccountState
        self._accounts: Dict[str, AccountState] = accounts if accounts is not None else {}
        # Addresses changed since the last persist()
        self._dirty: set = set()

    def load(self) -> bool:
        """Loads the global record from DB. Returns False when the pool was never persisted."""
        raw_json = self.db.get_state(POOL_KEY)
        if not raw_json:
            return False
        # Update in place: the accumulator holds a reference to self.pool
        loaded = GlobalPoolState.model_validate_json(raw_json)
        for name, value in loaded:
            setattr(self.pool, name, value)
        self._accounts.clear()
        self._dirty.clear()
        return True

    def has_account(self, address: str) -> bool:
        if address in self._accounts:
            return True
        return self.db.get_state(f"{ACCOUNT_PREFIX}{address}") is not None

    def get_account(self, address: str) -> AccountState:
        if address in self._accounts:
            return self._accounts[address]

        # Try load from DB
        raw_json = self.db.get_state(f"{ACCOUNT_PREFIX}{address}")
        if raw_json:
            acc = AccountState.model_validate_json(raw_json)
            self._accounts[address] = acc
            return acc

        # Unknown account: snapshot starts at the current index
        return AccountState(address=address, index_snapshot=self.pool.reward_index)

    def set_account(self, account: AccountState):
        """Updates account in local cache."""
        self._accounts[account.address] = account
        self._dirty.add(account.address)

    def get_all_accounts(self) -> List[AccountState]:
        """Loads all accounts from DB + cache overlay."""
        final_accounts: Dict[str, AccountState] = {}
        for k, v in self.db.get_state_by_prefix(ACCOUNT_PREFIX).items():
            addr = k[len(ACCOUNT_PREFIX):]
            final_accounts[addr] = AccountState.model_validate_json(v)

        for addr, acc in self._accounts.items():
            final_accounts[addr] = acc

        return list(final_accounts.values())

    def persist(self):
        """Writes the pool record and modified accounts to DB."""
        self.db.set_state(POOL_KEY, self.pool.model_dump_json())
        for addr in self._dirty:
            self.db.set_state(f"{ACCOUNT_PREFIX}{addr}", self._accounts[addr].model_dump_json())
        self._dirty.clear()

    def compute_state_root(self) -> str:
        """Merkle root over the pool record and every account, sorted by address."""
        leaves = [sha256(self.pool.model_dump_json().encode("utf-8"))]
        for acc in sorted(self.get_all_accounts(), key=lambda a: a.address):
            leaf_data = (
                acc.address
                + str(acc.balance)
                + str(acc.index_snapshot)
            ).encode("utf-8")
            leaves.append(sha256(leaf_data))
        return merkle_root(leaves).hex()

    @staticmethod
    def empty(db: StorageDB, start_time: int = 0, reward_rate: int = 0) -> 'PoolState':
        """Returns a fresh pool that starts accruing from `start_time`."""
        pool = GlobalPoolState(last_settlement_time=start_time, reward_rate_per_second=reward_rate)
        return PoolState(db, pool, {})
