# MIT License
# Copyright (c) 2025 Hashborn

"""
State Snapshot System

Exports and restores the persisted pool layout as compressed, hash-checked files.
"""

from .snapshot_manager import SnapshotManager
from .types import Snapshot, SnapshotMetadata

__all__ = ["SnapshotManager", "Snapshot", "SnapshotMetadata"]
