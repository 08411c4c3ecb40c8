# MIT License
# Copyright (c) 2025 Hashborn

"""
Snapshot Manager

Handles creation, storage, loading, and verification of pool snapshots.
"""

import gzip
import logging
from pathlib import Path
from typing import Optional, List
from datetime import datetime, timezone

from protocol.types.pool import GlobalPoolState, AccountState
from protocol.config.params import CURRENT_NETWORK
from .types import Snapshot, SnapshotMetadata
from ..core.state import PoolState, POOL_KEY, ACCOUNT_PREFIX

logger = logging.getLogger(__name__)


class SnapshotManager:
    """
    Manages pool snapshots for backup and fast restore.

    Snapshots are saved as compressed JSON files:
    - snapshots/snapshot_<seq>.json.gz (full snapshot)
    - snapshots/snapshot_<seq>_meta.json (metadata for quick queries)
    """

    def __init__(self, snapshots_dir: str = "snapshots"):
        self.snapshots_dir = Path(snapshots_dir)
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)

    def create_snapshot(self, state: PoolState, network_id: Optional[str] = None) -> SnapshotMetadata:
        """
        Create a snapshot of the persisted pool state.

        Unpersisted cache entries are flushed first so the file matches the DB.
        """
        if network_id is None:
            network_id = CURRENT_NETWORK.network_id

        state.persist()
        last_ops = state.db.get_operations(limit=1)
        sequence = last_ops[0][0] if last_ops else 0

        logger.info(f"Creating snapshot at sequence {sequence}...")

        accounts_dict = {acc.address: acc.model_dump_json() for acc in state.get_all_accounts()}

        snapshot = Snapshot(
            version="1.0.0",
            network_id=network_id,
            sequence=sequence,
            timestamp=datetime.now(timezone.utc).isoformat(),
            pool=state.pool.model_dump_json(),
            accounts=accounts_dict,
        )
        snapshot.hash = snapshot.calculate_hash()

        # Save to disk (compressed)
        snapshot_path = self._get_snapshot_path(sequence)
        uncompressed_data = snapshot.model_dump_json(indent=None).encode()
        uncompressed_size = len(uncompressed_data)

        with gzip.open(snapshot_path, 'wb', compresslevel=6) as f:
            f.write(uncompressed_data)

        compressed_size = snapshot_path.stat().st_size

        metadata = SnapshotMetadata(
            version=snapshot.version,
            network_id=snapshot.network_id,
            sequence=sequence,
            last_settlement_time=state.pool.last_settlement_time,
            timestamp=snapshot.timestamp,
            accounts_count=len(accounts_dict),
            total_staked=state.pool.total_staked,
            reward_index=state.pool.reward_index,
            hash=snapshot.hash,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size
        )

        with open(self._get_metadata_path(sequence), 'w') as f:
            f.write(metadata.model_dump_json(indent=2))

        logger.info(
            f"Snapshot created at sequence {sequence}: "
            f"{len(accounts_dict)} accounts, {compressed_size / 1024:.2f} KB compressed"
        )
        return metadata

    def load_snapshot(self, sequence: int) -> Snapshot:
        """
        Load a snapshot from disk.

        Raises:
            FileNotFoundError: If snapshot doesn't exist
            ValueError: If snapshot hash verification fails
        """
        snapshot_path = self._get_snapshot_path(sequence)

        if not snapshot_path.exists():
            raise FileNotFoundError(f"Snapshot at sequence {sequence} not found")

        with gzip.open(snapshot_path, 'rb') as f:
            data = f.read()

        snapshot = Snapshot.model_validate_json(data)

        if not snapshot.verify_hash():
            raise ValueError(f"Snapshot at sequence {sequence} failed hash verification!")

        logger.info(f"Snapshot loaded: {len(snapshot.accounts)} accounts")
        return snapshot

    def apply_snapshot(self, snapshot: Snapshot, state: PoolState):
        """Overwrite pool and account records with the snapshot contents."""
        logger.info(f"Applying snapshot from sequence {snapshot.sequence}...")

        # Accounts created after the snapshot must not survive the restore
        state.db.delete_state_by_prefix(ACCOUNT_PREFIX)
        for addr, acc_json in snapshot.accounts.items():
            AccountState.model_validate_json(acc_json)
            state.db.set_state(f"{ACCOUNT_PREFIX}{addr}", acc_json)

        GlobalPoolState.model_validate_json(snapshot.pool)
        state.db.set_state(POOL_KEY, snapshot.pool)

        # Drops the cache and re-reads the pool record in place
        state.load()

        logger.info(f"Snapshot applied: {len(snapshot.accounts)} accounts")

    def get_latest_sequence(self) -> Optional[int]:
        snapshots = self.list_snapshots()
        if not snapshots:
            return None
        return max(snap.sequence for snap in snapshots)

    def list_snapshots(self) -> List[SnapshotMetadata]:
        """
        List all available snapshots, newest first.
        """
        snapshots = []

        for meta_path in self.snapshots_dir.glob("snapshot_*_meta.json"):
            try:
                with open(meta_path, 'r') as f:
                    snapshots.append(SnapshotMetadata.model_validate_json(f.read()))
            except Exception as e:
                logger.warning(f"Failed to load metadata from {meta_path}: {e}")

        snapshots.sort(key=lambda s: s.sequence, reverse=True)
        return snapshots

    def delete_snapshot(self, sequence: int):
        snapshot_path = self._get_snapshot_path(sequence)
        meta_path = self._get_metadata_path(sequence)

        if snapshot_path.exists():
            snapshot_path.unlink()
            logger.info(f"Deleted snapshot at sequence {sequence}")

        if meta_path.exists():
            meta_path.unlink()

    def cleanup_old_snapshots(self, keep_count: int = 10):
        """Delete old snapshots, keeping only the N most recent."""
        snapshots = self.list_snapshots()
        if len(snapshots) <= keep_count:
            return

        to_delete = snapshots[keep_count:]
        for snap in to_delete:
            self.delete_snapshot(snap.sequence)

        logger.info(f"Cleaned up {len(to_delete)} old snapshots")

    def _get_snapshot_path(self, sequence: int) -> Path:
        return self.snapshots_dir / f"snapshot_{sequence}.json.gz"

    def _get_metadata_path(self, sequence: int) -> Path:
        return self.snapshots_dir / f"snapshot_{sequence}_meta.json"
