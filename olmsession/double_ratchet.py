"""
Double Ratchet state machine.

The sending side is one of two states:

- ``InactiveRatchet``: we know the root key and the peer's current ratchet
  key, but have not generated our own key pair yet.
- ``ActiveRatchet``: we own a ratchet key pair and a sending chain.

An inactive ratchet becomes active lazily, on the next encrypt. When the
peer shows up with a new ratchet key, the active ratchet performs one root
step that yields both the next inactive sending state and a fresh
``RemoteDoubleRatchet`` for the receiving side, so the two root keys stay
in step with the peer.

Message keys passed over on the receiving chain are kept in
``SkippedMessageKeys`` so that reordered messages can still be decrypted.
"""

import logging
from collections import OrderedDict
from typing import Iterable, List, Optional, Tuple, Union

from .chain_key import ChainKey, RemoteChainKey
from .config import SessionConfig
from .errors import PickleError, ProtocolStateError
from .keys import (
    Curve25519KeyPair,
    Curve25519SecretKey,
    KeyGenerator,
    RatchetKey,
    RemoteRatchetKey,
)
from .message_key import RemoteMessageKey
from .messages import Message
from .primitive import b64e, b64d
from .root_key import RootKey
from .shared_secret import Shared3DHSecret

logger = logging.getLogger(__name__)


# ============================================
# Sending side
# ============================================

class InactiveRatchet:
    """Sending state waiting for something to send."""

    def __init__(self, root_key: RootKey, remote_ratchet_key: RemoteRatchetKey):
        self.root_key = root_key
        self.remote_ratchet_key = remote_ratchet_key

    def activate(self, key_generator: KeyGenerator) -> "ActiveRatchet":
        """Generate our ratchet key pair and derive a sending chain against the peer's key."""
        ratchet_key = key_generator.generate_key_pair()
        root_key, chain_key = self.root_key.advance(ratchet_key, self.remote_ratchet_key)
        logger.debug("Activated sending ratchet %s", ratchet_key.public_key.to_base64())
        return ActiveRatchet(root_key, ratchet_key, chain_key)

    def to_dict(self) -> dict:
        return {
            "type": "inactive",
            "root_key": b64e(self.root_key.to_bytes()),
            "remote_ratchet_key": self.remote_ratchet_key.to_base64(),
        }

    def __repr__(self) -> str:
        return f"InactiveRatchet(remote_ratchet_key={self.remote_ratchet_key.to_base64()})"


class ActiveRatchet:
    """Sending state with our own ratchet key pair and chain key."""

    def __init__(self, root_key: RootKey, ratchet_key: RatchetKey, chain_key: ChainKey):
        self.root_key = root_key
        self.ratchet_key = ratchet_key
        self.chain_key = chain_key

    @staticmethod
    def from_shared_secret(shared_secret: Shared3DHSecret, key_generator: KeyGenerator) -> "ActiveRatchet":
        """Initiator bootstrap: the first sending chain comes straight from the 3DH secret."""
        root_key, chain_key = shared_secret.expand()
        return ActiveRatchet(root_key, key_generator.generate_key_pair(), chain_key)

    @property
    def ratchet_public_key(self) -> RemoteRatchetKey:
        return self.ratchet_key.public_key

    def encrypt(self, plaintext: bytes) -> Message:
        message_key = self.chain_key.create_message_key(self.ratchet_public_key)
        return message_key.encrypt(plaintext)

    def advance(self, remote_ratchet_key: RemoteRatchetKey) -> Tuple[InactiveRatchet, "RemoteDoubleRatchet"]:
        """
        DH ratchet step for a newly seen peer ratchet key.

        Pure: this ratchet is left as it was, the caller commits the result.
        """
        root_key, remote_chain_key = self.root_key.advance_remote(self.ratchet_key, remote_ratchet_key)
        return (
            InactiveRatchet(root_key, remote_ratchet_key),
            RemoteDoubleRatchet(remote_ratchet_key, remote_chain_key),
        )

    def to_dict(self) -> dict:
        return {
            "type": "active",
            "root_key": b64e(self.root_key.to_bytes()),
            "ratchet_key": b64e(self.ratchet_key.secret_key.to_bytes()),
            "chain_key": self.chain_key.to_dict(),
        }

    def __repr__(self) -> str:
        return f"ActiveRatchet(ratchet_key={self.ratchet_public_key.to_base64()}, chain_key={self.chain_key!r})"


LocalDoubleRatchet = Union[InactiveRatchet, ActiveRatchet]


def local_ratchet_from_dict(d: dict) -> LocalDoubleRatchet:
    kind = d.get("type")
    if kind == "inactive":
        return InactiveRatchet(
            RootKey(b64d(d["root_key"])),
            RemoteRatchetKey.from_base64(d["remote_ratchet_key"]),
        )
    if kind == "active":
        secret_key = Curve25519SecretKey.from_bytes(b64d(d["ratchet_key"]))
        return ActiveRatchet(
            RootKey(b64d(d["root_key"])),
            Curve25519KeyPair.from_secret_key(secret_key),
            ChainKey.from_dict(d["chain_key"]),
        )
    raise PickleError(f"Unknown sending ratchet state {kind!r}")


# ============================================
# Receiving side
# ============================================

class RemoteDoubleRatchet:
    """Receiving state: the peer's current ratchet key and the chain it sends on."""

    def __init__(self, ratchet_key: RemoteRatchetKey, chain_key: RemoteChainKey):
        self.ratchet_key = ratchet_key
        self.chain_key = chain_key

    def belongs_to(self, ratchet_key: RemoteRatchetKey) -> bool:
        return self.ratchet_key == ratchet_key

    def decrypt(
        self, message: Message, max_gap: int
    ) -> Tuple[bytes, List[RemoteMessageKey], "RemoteDoubleRatchet"]:
        """
        Decrypt a message sent on this chain.

        Returns:
            (plaintext, keys skipped on the way, the advanced ratchet)

        Raises:
            SkippedKeyExhausted: If no key can be derived for the message index
            AuthenticationFailed: If the message does not authenticate
        """
        if message.ratchet_key != self.ratchet_key:
            raise ProtocolStateError("Message was not sent on this receiving chain")

        skipped, message_key, chain_key = self.chain_key.advance_to(
            message.chain_index, self.ratchet_key, max_gap
        )
        plaintext = message_key.decrypt(message)
        return plaintext, skipped, RemoteDoubleRatchet(self.ratchet_key, chain_key)

    def to_dict(self) -> dict:
        return {
            "ratchet_key": self.ratchet_key.to_base64(),
            "chain_key": self.chain_key.to_dict(),
        }

    @staticmethod
    def from_dict(d: dict) -> "RemoteDoubleRatchet":
        return RemoteDoubleRatchet(
            RemoteRatchetKey.from_base64(d["ratchet_key"]),
            RemoteChainKey.from_dict(d["chain_key"]),
        )

    def __repr__(self) -> str:
        return f"RemoteDoubleRatchet(ratchet_key={self.ratchet_key.to_base64()}, chain_key={self.chain_key!r})"


# ============================================
# Skipped message keys
# ============================================

class SkippedMessageKeys:
    """
    Bounded cache of unused receiving keys, keyed by (ratchet key, index).

    Entries leave the cache when consumed, when the cache is full (oldest
    first), or when their chain has moved more than ``max_message_gap``
    messages past them.
    """

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self._keys: "OrderedDict[Tuple[bytes, int], RemoteMessageKey]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: Tuple[RemoteRatchetKey, int]) -> bool:
        ratchet_key, index = key
        return (ratchet_key.to_bytes(), index) in self._keys

    def get(self, ratchet_key: RemoteRatchetKey, index: int) -> Optional[RemoteMessageKey]:
        return self._keys.get((ratchet_key.to_bytes(), index))

    def remove(self, ratchet_key: RemoteRatchetKey, index: int) -> None:
        self._keys.pop((ratchet_key.to_bytes(), index), None)

    def add(self, message_keys: Iterable[RemoteMessageKey]) -> None:
        for message_key in message_keys:
            self._keys[(message_key.ratchet_key.to_bytes(), message_key.index)] = message_key
        while len(self._keys) > self.config.max_skipped_message_keys:
            (ratchet_key, index), _ = self._keys.popitem(last=False)
            logger.debug("Evicted skipped message key %s/%d", b64e(ratchet_key), index)

    def prune(self, ratchet_key: RemoteRatchetKey, next_index: int) -> None:
        """Drop keys of this chain that fell more than ``max_message_gap`` behind."""
        raw = ratchet_key.to_bytes()
        limit = next_index - self.config.max_message_gap
        stale = [k for k in self._keys if k[0] == raw and k[1] < limit]
        for k in stale:
            del self._keys[k]
        if stale:
            logger.debug("Pruned %d stale skipped message keys", len(stale))

    def to_list(self) -> list:
        return [message_key.to_dict() for message_key in self._keys.values()]

    @staticmethod
    def from_list(items: list, config: Optional[SessionConfig] = None) -> "SkippedMessageKeys":
        cache = SkippedMessageKeys(config)
        cache.add(RemoteMessageKey.from_dict(item) for item in items)
        return cache
