import bech32  # type: ignore
from .hash import sha256


def address_from_pubkey(pub_bytes: bytes, prefix: str) -> str:
    """
    Bech32 account address for a public key.

    The payload is the first 20 bytes of SHA256(pub_key).
    """
    h20 = sha256(pub_bytes)[:20]

    five_bit_r = bech32.convertbits(h20, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")

    return bech32.bech32_encode(prefix, five_bit_r)
