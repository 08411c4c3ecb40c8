import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from ..crypto.hash import canonical_hash
from ..crypto.keys import sign as crypto_sign, public_key_from_private

_INTEGER = re.compile(r"^-?[0-9]+$")


class RequestType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    UPDATE_REWARD_RATE = "UPDATE_REWARD_RATE"  # amount is the new rate
    TOKEN_APPROVE = "TOKEN_APPROVE"            # to_address is the spender
    TOKEN_TRANSFER = "TOKEN_TRANSFER"          # to_address is the recipient


class SignedRequest(BaseModel):
    """
    A state-changing request, signed by the account it acts for.

    The node never trusts `from_address` on its own: the public key must
    derive to it and the signature must cover every field below.
    """
    request_type: RequestType
    from_address: str
    to_address: Optional[str] = None
    # Base units. Parsed from an integer or a decimal integer string,
    # serialized to JSON as a string since values exceed 2**53.
    amount: int
    nonce: int = Field(..., ge=0)
    pub_key: str = ""    # hex, compressed secp256k1
    signature: str = ""  # hex, 64-byte r||s

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, value):
        if isinstance(value, bool):
            raise ValueError("amount must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and _INTEGER.match(value.strip()):
            return int(value.strip())
        raise ValueError("amount must be an integer or a string of digits")

    @field_serializer("amount", when_used="json")
    def amount_as_string(self, value: int) -> str:
        return str(value)

    @model_validator(mode="after")
    def check_target(self):
        if self.request_type in (RequestType.TOKEN_APPROVE, RequestType.TOKEN_TRANSFER) and not self.to_address:
            raise ValueError(f"{self.request_type.value} requires to_address")
        return self

    def hash(self) -> str:
        """Hex SHA256 of the signed fields (everything but the signature)."""
        return canonical_hash({
            "request_type": self.request_type.value,
            "from_address": self.from_address,
            "to_address": self.to_address or "",
            "amount": str(self.amount),
            "nonce": self.nonce,
            "pub_key": self.pub_key,
        })

    def sign(self, priv_key: bytes) -> 'SignedRequest':
        self.pub_key = public_key_from_private(priv_key).hex()
        self.signature = crypto_sign(bytes.fromhex(self.hash()), priv_key).hex()
        return self
