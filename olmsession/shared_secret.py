"""
Triple Diffie-Hellman (3DH) shared secret establishment.

Both sides combine three Diffie-Hellman outputs in a fixed order:

    DH(IKa, OTKb) || DH(EKa, IKb) || DH(EKa, OTKb)

where IKa/EKa are the initiator's identity and ephemeral keys and IKb/OTKb
are the responder's identity and one-time keys. The responder computes the
same three values with its own private keys, so both ends arrive at the
same bytes.

The concatenation is consumed exactly once by ``expand()``, which runs it
through HKDF to seed the first root key and chain key, and wipes the buffer.
"""

from typing import Tuple

from .chain_key import ChainKey, RemoteChainKey
from .errors import ProtocolStateError
from .keys import (
    Curve25519KeyPair,
    EphemeralKey,
    IdentityKey,
    OneTimeKey,
    SessionKeys,
)
from .primitive import hkdf_sha256
from .root_key import RootKey

ROOT_INFO = b"OLM_ROOT"


def _expand(secret: bytearray) -> Tuple[bytes, bytes]:
    """
    Derive the initial root key and chain key from the 3DH output.

    Uses HKDF-SHA256 with:
    - Salt: empty
    - Info: b"OLM_ROOT"
    - Output: 64 bytes (32 for RK + 32 for CK)
    """
    derived = hkdf_sha256(ikm=bytes(secret), salt=None, info=ROOT_INFO, length=64)
    return derived[:32], derived[32:64]


class _Consumable3DHSecret:
    def __init__(self, secret: bytes, session_keys: SessionKeys):
        self._secret = bytearray(secret)
        self._consumed = False
        self.session_keys = session_keys

    @property
    def consumed(self) -> bool:
        return self._consumed

    def _take(self) -> Tuple[bytes, bytes]:
        if self._consumed:
            raise ProtocolStateError("Shared secret has already been consumed")
        try:
            return _expand(self._secret)
        finally:
            for i in range(len(self._secret)):
                self._secret[i] = 0
            self._consumed = True

    def __repr__(self) -> str:
        state = "consumed" if self._consumed else "fresh"
        return f"{type(self).__name__}({state})"


class Shared3DHSecret(_Consumable3DHSecret):
    """3DH output computed by the session initiator."""

    @staticmethod
    def from_keys(
        identity_keypair: Curve25519KeyPair,
        ephemeral_keypair: Curve25519KeyPair,
        their_identity_key: IdentityKey,
        their_one_time_key: OneTimeKey,
    ) -> "Shared3DHSecret":
        """
        Initiator side of the handshake.

        Args:
            identity_keypair: Our long-term identity key pair
            ephemeral_keypair: Our fresh ephemeral (base) key pair
            their_identity_key: Responder's identity public key
            their_one_time_key: Responder's claimed one-time public key

        Raises:
            InvalidKey: If a peer key is not a usable curve point
        """
        dh1 = identity_keypair.diffie_hellman(their_one_time_key)
        dh2 = ephemeral_keypair.diffie_hellman(their_identity_key)
        dh3 = ephemeral_keypair.diffie_hellman(their_one_time_key)

        session_keys = SessionKeys(
            identity_key=identity_keypair.public_key,
            ephemeral_key=ephemeral_keypair.public_key,
            one_time_key=their_one_time_key,
        )
        return Shared3DHSecret(dh1 + dh2 + dh3, session_keys)

    def expand(self) -> Tuple[RootKey, ChainKey]:
        root_key, chain_key = self._take()
        return RootKey(root_key), ChainKey(chain_key)


class RemoteShared3DHSecret(_Consumable3DHSecret):
    """3DH output computed by the responder."""

    @staticmethod
    def from_keys(
        identity_keypair: Curve25519KeyPair,
        one_time_keypair: Curve25519KeyPair,
        their_identity_key: IdentityKey,
        their_ephemeral_key: EphemeralKey,
    ) -> "RemoteShared3DHSecret":
        """
        Responder side of the handshake.

        Args:
            identity_keypair: Our long-term identity key pair
            one_time_keypair: The one-time key pair the initiator claimed
            their_identity_key: Initiator's identity public key
            their_ephemeral_key: Initiator's ephemeral (base) public key

        Raises:
            InvalidKey: If a peer key is not a usable curve point
        """
        dh1 = one_time_keypair.diffie_hellman(their_identity_key)
        dh2 = identity_keypair.diffie_hellman(their_ephemeral_key)
        dh3 = one_time_keypair.diffie_hellman(their_ephemeral_key)

        session_keys = SessionKeys(
            identity_key=their_identity_key,
            ephemeral_key=their_ephemeral_key,
            one_time_key=one_time_keypair.public_key,
        )
        return RemoteShared3DHSecret(dh1 + dh2 + dh3, session_keys)

    def expand(self) -> Tuple[RootKey, RemoteChainKey]:
        root_key, chain_key = self._take()
        return RootKey(root_key), RemoteChainKey(chain_key)
