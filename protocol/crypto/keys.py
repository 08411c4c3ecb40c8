from ecdsa import SigningKey, VerifyingKey, SECP256k1  # type: ignore
from ecdsa.util import sigencode_string, sigdecode_string  # type: ignore
import hashlib
import os


def generate_private_key() -> bytes:
    """Generates a random 32-byte secp256k1 private key."""
    return os.urandom(32)


def private_key_from_hex(priv_hex: str) -> bytes:
    try:
        priv = bytes.fromhex(priv_hex)
    except ValueError:
        raise ValueError("Invalid hex string")
    if len(priv) != 32:
        raise ValueError("Invalid private key length")
    return priv


def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Returns the compressed 33-byte public key."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.get_verifying_key().to_string("compressed")


def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """Signs a 32-byte digest. Returns the 64-byte (r, s) signature."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.sign_digest_deterministic(message_hash, hashfunc=hashlib.sha256, sigencode=sigencode_string)


def verify(message_hash: bytes, signature: bytes, pub_bytes: bytes) -> bool:
    try:
        vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
        return vk.verify_digest(signature, message_hash, sigdecode=sigdecode_string)
    except Exception:
        return False
