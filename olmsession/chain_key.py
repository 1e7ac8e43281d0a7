"""
Symmetric-key ratchet.

Every message advances a chain key once:

    message_seed   = HMAC-SHA256(CK, 0x01)
    next_chain_key = HMAC-SHA256(CK, 0x02)

The sending chain mutates in place since encryption cannot fail half way.
The receiving chain is immutable; ``advance_to`` returns the next chain so
the session can throw it away if the message does not authenticate.
"""

from typing import List, Tuple

from .errors import SkippedKeyExhausted
from .keys import RemoteRatchetKey
from .message_key import MessageKey, RemoteMessageKey
from .primitive import b64e, b64d, hmac_sha256

MESSAGE_KEY_SEED = b"\x01"
ADVANCEMENT_SEED = b"\x02"


def kdf_ck(ck: bytes) -> Tuple[bytes, bytes]:
    """
    Chain Key Derivation.

    Returns:
        Tuple of (message_seed, next_ck), each 32 bytes
    """
    return hmac_sha256(ck, MESSAGE_KEY_SEED), hmac_sha256(ck, ADVANCEMENT_SEED)


class ChainKey:
    """Our sending chain."""

    def __init__(self, key: bytes, index: int = 0):
        self._key = bytes(key)
        self._index = index

    def create_message_key(self, ratchet_key: RemoteRatchetKey) -> MessageKey:
        """Derive the key for the next outgoing message and move the chain on."""
        seed, self._key = kdf_ck(self._key)
        message_key = MessageKey(seed, ratchet_key, self._index)
        self._index += 1
        return message_key

    def to_dict(self) -> dict:
        return {"key": b64e(self._key), "index": self._index}

    @staticmethod
    def from_dict(d: dict) -> "ChainKey":
        return ChainKey(b64d(d["key"]), int(d["index"]))

    def __repr__(self) -> str:
        return f"ChainKey(index={self._index})"


class RemoteChainKey:
    """The peer's sending chain, as tracked by the receiver."""

    def __init__(self, key: bytes, index: int = 0):
        self._key = bytes(key)
        self._index = index

    def is_ahead_of(self, index: int) -> bool:
        """True if the message key for ``index`` has already been derived."""
        return index < self._index

    def advance_to(
        self, index: int, ratchet_key: RemoteRatchetKey, max_gap: int
    ) -> Tuple[List[RemoteMessageKey], RemoteMessageKey, "RemoteChainKey"]:
        """
        Derive the message key at ``index`` without touching this chain.

        Returns:
            (skipped keys for the indices passed over, key for ``index``, next chain)

        Raises:
            SkippedKeyExhausted: If ``index`` is behind the chain or too far ahead
        """
        if self.is_ahead_of(index):
            raise SkippedKeyExhausted(f"Message index {index} is behind the chain ({self._index})")
        if index - self._index > max_gap:
            raise SkippedKeyExhausted(
                f"Message index {index} is more than {max_gap} messages ahead of the chain"
            )

        key = self._key
        skipped = []
        for i in range(self._index, index):
            seed, key = kdf_ck(key)
            skipped.append(RemoteMessageKey(seed, ratchet_key, i))

        seed, key = kdf_ck(key)
        return skipped, RemoteMessageKey(seed, ratchet_key, index), RemoteChainKey(key, index + 1)

    def to_dict(self) -> dict:
        return {"key": b64e(self._key), "index": self._index}

    @staticmethod
    def from_dict(d: dict) -> "RemoteChainKey":
        return RemoteChainKey(b64d(d["key"]), int(d["index"]))

    def __repr__(self) -> str:
        return f"RemoteChainKey(index={self._index})"
