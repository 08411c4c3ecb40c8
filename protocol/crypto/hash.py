import hashlib
import json
from typing import Any, List


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    return sha256(data).hex()


def canonical_hash(data: Any) -> str:
    """Hex SHA256 of `data` serialized as compact JSON with sorted keys."""
    canonical_json = json.dumps(data, sort_keys=True, separators=(',', ':'))
    return sha256_hex(canonical_json.encode())


def merkle_root(hashes: List[bytes]) -> bytes:
    """
    Merkle root over leaf hashes (odd levels duplicate the last node).

    An empty list yields 32 zero bytes so an empty pool still has a root.
    """
    if not hashes:
        return b'\x00' * 32

    level = list(hashes)
    while len(level) > 1:
        if len(level) % 2:
            level.append(level[-1])
        level = [sha256(level[i] + level[i + 1]) for i in range(0, len(level), 2)]
    return level[0]
