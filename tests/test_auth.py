"""
Signed requests: keys, request hashing, verification and nonces.
"""

import pytest
from pydantic import ValidationError

from protocol.config.params import NETWORKS
from protocol.crypto.addresses import address_from_pubkey
from protocol.crypto.keys import generate_private_key, public_key_from_private, sign, verify
from protocol.types.common import InvalidNonce, InvalidSignature, Unauthorized, VaultEmptied
from protocol.types.request import RequestType, SignedRequest
from stakepool.core.asset_ledger import TokenLedger
from stakepool.core.auth import RequestVerifier
from stakepool.core.clock import ManualClock
from stakepool.core.events import EventBus
from stakepool.core.service import StakingService
from stakepool.core.state import PoolState
from stakepool.storage.db import StorageDB

NETWORK = NETWORKS["devnet"]
POOL = NETWORK.pool_address
PREFIX = NETWORK.address_prefix
ALICE_KEY = bytes.fromhex("11" * 32)
ALICE = address_from_pubkey(public_key_from_private(ALICE_KEY), PREFIX)
STAKE = 2 * 10**18


def request(request_type=RequestType.DEPOSIT, amount=STAKE, nonce=0, to_address=None, key=ALICE_KEY):
    sender = address_from_pubkey(public_key_from_private(key), PREFIX)
    return SignedRequest(request_type=request_type, from_address=sender, to_address=to_address,
                         amount=amount, nonce=nonce).sign(key)


@pytest.fixture
def db(tmp_path):
    db = StorageDB(str(tmp_path / "pool.db"))
    yield db
    db.close()


def make_service(db, vault=5_000 * 10**18):
    tokens = TokenLedger(db)
    tokens.mint(NETWORK.operator_address, 10_000 * 10**18)
    tokens.send(NETWORK.operator_address, ALICE, 100 * 10**18)
    if vault:
        tokens.send(NETWORK.operator_address, POOL, vault)
    state = PoolState.empty(db, start_time=1_700_000_000, reward_rate=100)
    return StakingService(state, tokens, network=NETWORK, clock=ManualClock(start=1_700_000_000),
                          events=EventBus())


# --- Keys and request model ---

def test_sign_and_verify():
    priv = generate_private_key()
    pub = public_key_from_private(priv)
    digest = bytes(range(32))

    sig = sign(digest, priv)
    assert len(pub) == 33
    assert len(sig) == 64
    assert verify(digest, sig, pub)
    assert not verify(bytes(32), sig, pub)
    assert not verify(digest, sig, public_key_from_private(ALICE_KEY))
    assert not verify(digest, b"\x00" * 10, pub)


def test_devnet_operator_address_derives_from_its_key():
    pub = public_key_from_private(bytes.fromhex(NETWORK.operator_priv_key))
    assert NETWORK.operator_address == address_from_pubkey(pub, PREFIX)
    assert NETWORKS["mainnet"].operator_address is None


def test_request_hash_covers_every_signed_field():
    base = request()
    for field, value in (("amount", STAKE + 1), ("nonce", 1), ("to_address", POOL),
                         ("request_type", RequestType.WITHDRAW), ("from_address", POOL)):
        assert base.model_copy(update={field: value}).hash() != base.hash()
    assert base.model_copy(update={"signature": "00"}).hash() == base.hash()


def test_request_amount_parsing():
    assert SignedRequest(request_type="DEPOSIT", from_address=ALICE, amount="12", nonce=0).amount == 12
    assert SignedRequest(request_type="DEPOSIT", from_address=ALICE, amount=12, nonce=0).amount == 12
    for bad in ("12.0", "", "0x10", 1.0, True, None):
        with pytest.raises(ValidationError):
            SignedRequest(request_type="DEPOSIT", from_address=ALICE, amount=bad, nonce=0)


def test_token_requests_need_a_target():
    with pytest.raises(ValidationError):
        SignedRequest(request_type="TOKEN_TRANSFER", from_address=ALICE, amount=1, nonce=0)


def test_json_dump_sends_amount_as_string():
    body = request().model_dump(mode="json")
    assert body["amount"] == str(STAKE)
    assert SignedRequest.model_validate(body).hash() == request().hash()


# --- Verifier ---

def test_verifier_accepts_valid_request(db):
    verifier = RequestVerifier(db, POOL, PREFIX)
    verifier.verify(request())
    assert verifier.consume(ALICE) == 1
    verifier.verify(request(nonce=1))


def test_verifier_rejects_pool_sender(db):
    verifier = RequestVerifier(db, POOL, PREFIX)
    forged = SignedRequest(request_type=RequestType.TOKEN_TRANSFER, from_address=POOL,
                           to_address=ALICE, amount=1, nonce=0)
    with pytest.raises(Unauthorized):
        verifier.verify(forged)
    with pytest.raises(Unauthorized):
        verifier.verify(forged.sign(ALICE_KEY).model_copy(update={"from_address": POOL}))


def test_verifier_rejects_bad_signatures(db):
    verifier = RequestVerifier(db, POOL, PREFIX)
    good = request()

    unsigned = good.model_copy(update={"signature": "", "pub_key": ""})
    wrong_key = request(key=bytes.fromhex("22" * 32)).model_copy(update={"from_address": ALICE})
    tampered = good.model_copy(update={"amount": STAKE * 100})
    not_hex = good.model_copy(update={"signature": "zz"})

    for req in (unsigned, wrong_key, tampered, not_hex):
        with pytest.raises(InvalidSignature):
            verifier.verify(req)


def test_verifier_checks_nonce(db):
    verifier = RequestVerifier(db, POOL, PREFIX)
    with pytest.raises(InvalidNonce):
        verifier.verify(request(nonce=1))

    verifier.consume(ALICE)
    with pytest.raises(InvalidNonce):
        verifier.verify(request(nonce=0))


def test_nonces_survive_reload(db):
    RequestVerifier(db, POOL, PREFIX).consume(ALICE)
    assert RequestVerifier(db, POOL, PREFIX).nonce_of(ALICE) == 1


# --- Service ---

def test_submit_applies_and_consumes_nonce(db):
    service = make_service(db)
    service.submit(request(RequestType.TOKEN_APPROVE, to_address=POOL, nonce=0))
    acc = service.submit(request(RequestType.DEPOSIT, nonce=1))

    assert acc.address == ALICE
    assert acc.balance == STAKE
    assert service.nonce_of(ALICE) == 2

    with pytest.raises(InvalidNonce):
        service.submit(request(RequestType.DEPOSIT, nonce=1))
    assert service.balance_of(ALICE) == STAKE


def test_rejected_operation_keeps_nonce(db):
    service = make_service(db, vault=0)
    failures = []
    service.events.subscribe("operation_failed", lambda **event: failures.append(event["code"]))

    with pytest.raises(VaultEmptied):
        service.submit(request(RequestType.WITHDRAW, nonce=0))
    with pytest.raises(InvalidSignature):
        service.submit(request(nonce=0).model_copy(update={"amount": 1}))

    assert service.nonce_of(ALICE) == 0
    assert failures == ["vault_emptied", "invalid_signature"]


def test_pool_funds_only_leave_through_withdrawals(db):
    service = make_service(db)
    with pytest.raises(Unauthorized):
        service.transfer_tokens(POOL, ALICE, 1)
    assert service.vault.vault_balance() == 5_000 * 10**18


def test_rate_update_uses_signer_identity(db):
    service = make_service(db)
    operator_key = bytes.fromhex(NETWORK.operator_priv_key)

    with pytest.raises(Unauthorized):
        service.submit(request(RequestType.UPDATE_REWARD_RATE, amount=10**9))
    assert service.submit(request(RequestType.UPDATE_REWARD_RATE, amount=250, key=operator_key)) == 100
    assert service.state.pool.reward_rate_per_second == 250
