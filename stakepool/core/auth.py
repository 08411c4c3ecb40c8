from typing import Dict, Optional
import logging

from protocol.crypto.addresses import address_from_pubkey
from protocol.crypto.keys import verify
from protocol.types.common import InvalidNonce, InvalidSignature, Unauthorized
from protocol.types.request import SignedRequest
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class RequestVerifier:
    """
    Authenticates signed requests and tracks per-account nonces.

    Nonces live under their own key prefix, so restoring a pool snapshot
    never rewinds them and an old request cannot be replayed.
    """

    NONCE_PREFIX = "nonce:"

    def __init__(self, db: Optional[StorageDB], pool_address: str, address_prefix: str):
        self.db = db
        self.pool_address = pool_address
        self.address_prefix = address_prefix
        self.nonces: Dict[str, int] = {}
        if db is not None:
            for key, value in db.get_state_by_prefix(self.NONCE_PREFIX).items():
                self.nonces[key[len(self.NONCE_PREFIX):]] = int(value)

    def nonce_of(self, address: str) -> int:
        """Nonce the account's next request must carry."""
        return self.nonces.get(address, 0)

    def verify(self, request: SignedRequest) -> None:
        """Raises unless `request` is signed by `from_address` with the expected nonce."""
        sender = request.from_address
        tag = request.hash()[:8]

        if sender == self.pool_address:
            logger.warning(f"Rejecting request {tag}: pool account as sender")
            raise Unauthorized("The pool account cannot sign requests", sender=sender)

        if not request.signature or not request.pub_key:
            logger.warning(f"Rejecting request {tag}: missing signature/pub_key")
            raise InvalidSignature("Missing signature or public key", sender=sender)

        try:
            pub_bytes = bytes.fromhex(request.pub_key)
            sig_bytes = bytes.fromhex(request.signature)
        except ValueError:
            logger.warning(f"Rejecting request {tag}: signature or pub_key is not hex")
            raise InvalidSignature("Signature and public key must be hex encoded", sender=sender)

        derived = address_from_pubkey(pub_bytes, self.address_prefix)
        if derived != sender:
            logger.warning(f"Rejecting request {tag}: pub_key belongs to {derived}, not {sender}")
            raise InvalidSignature("Public key does not belong to the sending account", sender=sender)

        if not verify(bytes.fromhex(request.hash()), sig_bytes, pub_bytes):
            logger.warning(f"Rejecting request {tag}: invalid signature")
            raise InvalidSignature(sender=sender)

        expected = self.nonce_of(sender)
        if request.nonce != expected:
            logger.warning(f"Rejecting request {tag}: nonce {request.nonce}, expected {expected}")
            raise InvalidNonce(expected=expected, got=request.nonce)

    def consume(self, address: str) -> int:
        nonce = self.nonce_of(address) + 1
        self.nonces[address] = nonce
        if self.db is not None:
            self.db.set_state(f"{self.NONCE_PREFIX}{address}", str(nonce))
        return nonce
