from typing import Tuple

from .chain_key import ChainKey, RemoteChainKey
from .keys import Curve25519KeyPair, RemoteRatchetKey
from .primitive import hkdf_sha256

RATCHET_INFO = b"OLM_RATCHET"


def kdf_rk(rk: bytes, dh_out: bytes) -> Tuple[bytes, bytes]:
    """
    Root Key Derivation (DH Ratchet).

    Uses HKDF-SHA256 with:
    - Salt: current RK
    - Info: b"OLM_RATCHET"
    - Output: 64 bytes (32 for RK + 32 for CK)

    Args:
        rk: Current root key (32 bytes)
        dh_out: DH(our_ratchet_priv, their_ratchet_pub) (32 bytes)

    Returns:
        Tuple of (new_rk, new_ck), each 32 bytes
    """
    derived = hkdf_sha256(ikm=dh_out, salt=rk, info=RATCHET_INFO, length=64)
    return derived[:32], derived[32:64]


class RootKey:
    """Root of the DH ratchet; replaced by every ratchet step."""

    def __init__(self, key: bytes):
        self._key = bytes(key)

    def to_bytes(self) -> bytes:
        return self._key

    def _step(self, ratchet_key: Curve25519KeyPair, remote_ratchet_key: RemoteRatchetKey) -> Tuple[bytes, bytes]:
        dh_out = ratchet_key.diffie_hellman(remote_ratchet_key)
        return kdf_rk(self._key, dh_out)

    def advance(
        self, ratchet_key: Curve25519KeyPair, remote_ratchet_key: RemoteRatchetKey
    ) -> Tuple["RootKey", ChainKey]:
        """Sending-side step: our fresh ratchet key against the peer's current one."""
        rk, ck = self._step(ratchet_key, remote_ratchet_key)
        return RootKey(rk), ChainKey(ck)

    def advance_remote(
        self, ratchet_key: Curve25519KeyPair, remote_ratchet_key: RemoteRatchetKey
    ) -> Tuple["RootKey", RemoteChainKey]:
        """Receiving-side step: our current ratchet key against the peer's new one."""
        rk, ck = self._step(ratchet_key, remote_ratchet_key)
        return RootKey(rk), RemoteChainKey(ck)

    def __repr__(self) -> str:
        return "RootKey(...)"
