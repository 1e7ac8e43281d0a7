import pytest

from olmsession import (
    Curve25519KeyPair,
    Curve25519SecretKey,
    KeyGenerator,
    create_inbound_session,
    create_outbound_session,
)
from olmsession.primitive import sha256


class SeededKeyGenerator(KeyGenerator):
    """Deterministic key pairs, so ratchet keys are reproducible in tests."""

    def __init__(self, seed: bytes):
        self.seed = seed
        self.counter = 0

    def generate_key_pair(self) -> Curve25519KeyPair:
        raw = sha256(self.seed + self.counter.to_bytes(4, "big"))
        self.counter += 1
        return Curve25519KeyPair.from_secret_key(Curve25519SecretKey.from_bytes(raw))


@pytest.fixture
def alice_generator():
    return SeededKeyGenerator(b"alice")


@pytest.fixture
def bob_generator():
    return SeededKeyGenerator(b"bob")


@pytest.fixture
def alice_identity():
    return Curve25519KeyPair.generate()


@pytest.fixture
def bob_identity():
    return Curve25519KeyPair.generate()


@pytest.fixture
def bob_one_time():
    return Curve25519KeyPair.generate()


@pytest.fixture
def alice_session(alice_identity, bob_identity, bob_one_time, alice_generator):
    return create_outbound_session(
        alice_identity,
        bob_identity.public_key,
        bob_one_time.public_key,
        key_generator=alice_generator,
    )


@pytest.fixture
def session_pair(alice_session, bob_identity, bob_one_time, bob_generator):
    """Alice has sent one prekey message and Bob has accepted it."""
    first = alice_session.encrypt(b"first")
    result = create_inbound_session(bob_identity, bob_one_time, first, key_generator=bob_generator)
    assert result.plaintext == b"first"
    return alice_session, result.session
