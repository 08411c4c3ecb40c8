import os
import json
import time
from typing import List, Dict, Optional

from protocol.config.params import ADDRESS_PREFIX
from protocol.crypto.addresses import address_from_pubkey
from protocol.crypto.keys import generate_private_key, private_key_from_hex, public_key_from_private

KEYSTORE_DIR = os.path.expanduser("~/.stakepool/keys")


class KeyStore:
    """Named secp256k1 keys, one JSON file per key."""

    def __init__(self, root_dir: str = KEYSTORE_DIR, prefix: str = ADDRESS_PREFIX):
        self.root_dir = root_dir
        self.prefix = prefix
        os.makedirs(self.root_dir, exist_ok=True)

    def create_key(self, name: str) -> Dict[str, str]:
        return self._store(name, generate_private_key())

    def import_key(self, name: str, private_key_hex: str) -> Dict[str, str]:
        return self._store(name, private_key_from_hex(private_key_hex))

    def get_key(self, name: str) -> Optional[Dict[str, str]]:
        path = self._path(name)
        if not os.path.exists(path):
            return None
        with open(path, "r") as f:
            return json.load(f)

    def private_key(self, name: str) -> bytes:
        data = self.get_key(name)
        if data is None:
            raise ValueError(f"Key '{name}' not found")
        return bytes.fromhex(data["private_key"])

    def list_keys(self) -> List[Dict[str, str]]:
        """Lists all keys without their private part."""
        keys = []
        for filename in sorted(os.listdir(self.root_dir)):
            if filename.endswith(".json"):
                data = self.get_key(filename[:-5])
                keys.append({
                    "name": data["name"],
                    "address": data["address"],
                    "public_key": data["public_key"],
                })
        return keys

    def _store(self, name: str, priv: bytes) -> Dict[str, str]:
        if self.get_key(name):
            raise ValueError(f"Key '{name}' already exists")

        pub = public_key_from_private(priv)
        key_data = {
            "name": name,
            "address": address_from_pubkey(pub, self.prefix),
            "public_key": pub.hex(),
            "private_key": priv.hex(),  # TODO: encrypt with a passphrase
            "created_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }

        path = self._path(name)
        with open(path, "w") as f:
            json.dump(key_data, f, indent=2)
        os.chmod(path, 0o600)
        return key_data

    def _path(self, name: str) -> str:
        return os.path.join(self.root_dir, f"{name}.json")
