"""
Double Ratchet State Machine Tests

Tests for:
1. Activation of the sending ratchet
2. DH ratchet steps keeping both sides in sync
3. Receiving ratchet purity
4. Skipped message key cache
5. State persistence
"""

from dataclasses import replace

import pytest

from olmsession import (
    AuthenticationFailed,
    Curve25519KeyPair,
    KeyGenerator,
    PickleError,
    SessionConfig,
    SkippedKeyExhausted,
)
from olmsession.chain_key import ChainKey, RemoteChainKey
from olmsession.double_ratchet import (
    ActiveRatchet,
    InactiveRatchet,
    RemoteDoubleRatchet,
    SkippedMessageKeys,
    local_ratchet_from_dict,
)
from olmsession.message_key import RemoteMessageKey
from olmsession.root_key import RootKey


@pytest.fixture
def ratchets(alice_generator):
    """Alice active on her first ratchet key, Bob inactive and waiting to send."""
    root_key = RootKey(b"\x00" * 32)
    alice_key = alice_generator.generate_key_pair()
    alice = ActiveRatchet(root_key, alice_key, ChainKey(b"\x01" * 32))
    bob = InactiveRatchet(root_key, alice_key.public_key)
    return alice, bob


class TestActivation:

    def test_activate_uses_key_generator(self):
        """The new ratchet key comes from the injected generator."""
        expected = Curve25519KeyPair.generate()

        class FixedKeyGenerator(KeyGenerator):
            def generate_key_pair(self):
                return expected

        inactive = InactiveRatchet(RootKey(b"\x00" * 32), Curve25519KeyPair.generate().public_key)

        active = inactive.activate(FixedKeyGenerator())

        assert isinstance(active, ActiveRatchet)
        assert active.ratchet_public_key == expected.public_key
        assert active.root_key.to_bytes() != inactive.root_key.to_bytes()

    def test_key_generator_must_implement_generate(self):
        class Incomplete(KeyGenerator):
            pass

        with pytest.raises(TypeError):
            Incomplete()
        with pytest.raises(TypeError):
            KeyGenerator()

    def test_dh_step_keeps_sides_in_sync(self, ratchets, bob_generator):
        """Bob's activation and Alice's DH step derive the same chain and root key."""
        alice, bob = ratchets

        bob_active = bob.activate(bob_generator)
        message = bob_active.encrypt(b"hi alice")

        alice_inactive, alice_remote = alice.advance(message.ratchet_key)
        plaintext, skipped, _ = alice_remote.decrypt(message, max_gap=10)

        assert plaintext == b"hi alice"
        assert skipped == []
        assert alice_inactive.root_key.to_bytes() == bob_active.root_key.to_bytes()
        assert alice_inactive.remote_ratchet_key == bob_active.ratchet_public_key

    def test_second_round_trip(self, ratchets, alice_generator, bob_generator):
        """After Alice re-activates, Bob's DH step decrypts her new chain."""
        alice, bob = ratchets
        bob_active = bob.activate(bob_generator)
        alice_inactive, _ = alice.advance(bob_active.ratchet_public_key)

        alice_active = alice_inactive.activate(alice_generator)
        message = alice_active.encrypt(b"second")

        _, bob_remote = bob_active.advance(message.ratchet_key)
        plaintext, _, _ = bob_remote.decrypt(message, max_gap=10)

        assert plaintext == b"second"

    def test_advance_is_pure(self, ratchets):
        """A DH step returns new state and leaves the active ratchet untouched."""
        alice, _ = ratchets
        before = alice.to_dict()

        alice.advance(Curve25519KeyPair.generate().public_key)

        assert alice.to_dict() == before


class TestRemoteDoubleRatchet:

    def test_decrypt_returns_new_ratchet(self, ratchets, bob_generator):
        alice, bob = ratchets
        bob_active = bob.activate(bob_generator)
        messages = [bob_active.encrypt(f"m{i}".encode()) for i in range(3)]
        _, remote = alice.advance(bob_active.ratchet_public_key)
        before = remote.to_dict()

        plaintext, skipped, advanced = remote.decrypt(messages[2], max_gap=10)

        assert plaintext == b"m2"
        assert [k.index for k in skipped] == [0, 1]
        assert remote.to_dict() == before
        assert advanced.to_dict()["chain_key"]["index"] == 3
        assert skipped[0].decrypt(messages[0]) == b"m0"

    def test_belongs_to(self):
        key = Curve25519KeyPair.generate().public_key
        remote = RemoteDoubleRatchet(key, RemoteChainKey(b"\x00" * 32))

        assert remote.belongs_to(key)
        assert not remote.belongs_to(Curve25519KeyPair.generate().public_key)

    def test_tampered_message_raises(self, ratchets, bob_generator):
        alice, bob = ratchets
        bob_active = bob.activate(bob_generator)
        message = bob_active.encrypt(b"hello")
        _, remote = alice.advance(message.ratchet_key)

        tampered = replace(message, ciphertext=bytes([message.ciphertext[0] ^ 0x80]) + message.ciphertext[1:])

        with pytest.raises(AuthenticationFailed):
            remote.decrypt(tampered, max_gap=10)

    def test_index_behind_chain(self, ratchets, bob_generator):
        alice, bob = ratchets
        bob_active = bob.activate(bob_generator)
        message = bob_active.encrypt(b"once")
        _, remote = alice.advance(message.ratchet_key)

        _, _, remote = remote.decrypt(message, max_gap=10)

        with pytest.raises(SkippedKeyExhausted):
            remote.decrypt(message, max_gap=10)


class TestSkippedMessageKeys:

    def _keys(self, ratchet_key, indices):
        return [RemoteMessageKey(bytes([i]) * 32, ratchet_key, i) for i in indices]

    def test_add_get_remove(self):
        ratchet_key = Curve25519KeyPair.generate().public_key
        cache = SkippedMessageKeys()

        cache.add(self._keys(ratchet_key, [0, 1]))

        assert len(cache) == 2
        assert (ratchet_key, 1) in cache
        assert cache.get(ratchet_key, 1).index == 1
        cache.remove(ratchet_key, 1)
        assert cache.get(ratchet_key, 1) is None

    def test_bounded_oldest_evicted(self):
        ratchet_key = Curve25519KeyPair.generate().public_key
        cache = SkippedMessageKeys(SessionConfig(max_skipped_message_keys=3))

        cache.add(self._keys(ratchet_key, range(5)))

        assert len(cache) == 3
        assert cache.get(ratchet_key, 0) is None
        assert cache.get(ratchet_key, 1) is None
        assert cache.get(ratchet_key, 4) is not None

    def test_prune_by_lag(self):
        ratchet_key = Curve25519KeyPair.generate().public_key
        other_key = Curve25519KeyPair.generate().public_key
        cache = SkippedMessageKeys(SessionConfig(max_message_gap=5))
        cache.add(self._keys(ratchet_key, [0, 1, 8]))
        cache.add(self._keys(other_key, [0]))

        cache.prune(ratchet_key, next_index=10)

        assert cache.get(ratchet_key, 0) is None
        assert cache.get(ratchet_key, 1) is None
        assert cache.get(ratchet_key, 8) is not None
        assert cache.get(other_key, 0) is not None

    def test_serialization(self):
        ratchet_key = Curve25519KeyPair.generate().public_key
        cache = SkippedMessageKeys()
        cache.add(self._keys(ratchet_key, [3, 4]))

        restored = SkippedMessageKeys.from_list(cache.to_list())

        assert len(restored) == 2
        assert restored.get(ratchet_key, 4).to_dict() == cache.get(ratchet_key, 4).to_dict()


class TestRatchetPersistence:

    def test_active_round_trip(self, ratchets):
        alice, _ = ratchets

        restored = local_ratchet_from_dict(alice.to_dict())

        assert isinstance(restored, ActiveRatchet)
        assert restored.to_dict() == alice.to_dict()
        assert restored.ratchet_public_key == alice.ratchet_public_key

    def test_inactive_round_trip(self, ratchets):
        _, bob = ratchets

        restored = local_ratchet_from_dict(bob.to_dict())

        assert isinstance(restored, InactiveRatchet)
        assert restored.to_dict() == bob.to_dict()

    def test_unknown_state(self):
        with pytest.raises(PickleError):
            local_ratchet_from_dict({"type": "dormant"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
