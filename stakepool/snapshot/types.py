# MIT License
# Copyright (c) 2025 Hashborn

"""
Snapshot Data Structures
"""

from pydantic import BaseModel, Field
from typing import Dict, Optional

from protocol.crypto.hash import canonical_hash


class SnapshotMetadata(BaseModel):
    """
    Snapshot metadata (stored separately for quick querying).
    """
    version: str = Field(default="1.0.0", description="Snapshot format version")
    network_id: str = Field(..., description="Network ID (devnet/testnet/mainnet)")
    sequence: int = Field(..., description="Journal sequence of the last applied operation")
    last_settlement_time: int = Field(..., description="Pool settlement time at snapshot")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    accounts_count: int = Field(..., description="Number of account records")
    total_staked: int = Field(..., description="Stored total staked value")
    reward_index: int = Field(..., description="Stored reward index")
    hash: str = Field(..., description="SHA256 hash of snapshot data")
    compressed_size: int = Field(..., description="Compressed file size (bytes)")
    uncompressed_size: int = Field(..., description="Uncompressed data size (bytes)")


class Snapshot(BaseModel):
    """
    Complete pool snapshot (saved to disk, compressed).
    """
    # Metadata
    version: str = Field(default="1.0.0", description="Snapshot format version")
    network_id: str = Field(..., description="Network ID")
    sequence: int = Field(..., description="Journal sequence")
    timestamp: str = Field(..., description="ISO 8601 timestamp")

    # State data (serialized records as JSON strings)
    pool: str = Field(..., description="GlobalPoolState JSON")
    accounts: Dict[str, str] = Field(default_factory=dict, description="address -> AccountState JSON")

    # Verification
    hash: Optional[str] = Field(default=None, description="SHA256 hash of snapshot (excluding this field)")

    def calculate_hash(self) -> str:
        """Calculate SHA256 hash of snapshot data (excluding hash field)."""
        return canonical_hash(self.model_dump(exclude={"hash"}))

    def verify_hash(self) -> bool:
        if not self.hash:
            return False

        return self.calculate_hash() == self.hash
