"""
Per-message keys and authenticated encryption.

A message seed from the chain ratchet is expanded with HKDF into an
AES-256 key, an HMAC-SHA256 key and a CBC IV. The ciphertext is
authenticated with an HMAC over the encoded message as it goes over the wire
(version byte and protobuf body), truncated to 8 bytes.
"""

from dataclasses import dataclass, replace

from .errors import AuthenticationFailed
from .keys import RemoteRatchetKey
from .messages import MAC_LENGTH, Message
from .primitive import (
    aes256_cbc_decrypt,
    aes256_cbc_encrypt,
    b64e,
    b64d,
    constant_time_compare,
    hkdf_sha256,
    hmac_sha256,
)

KEYS_INFO = b"OLM_KEYS"


@dataclass(frozen=True)
class CipherKeys:
    aes_key: bytes
    mac_key: bytes
    iv: bytes

    @staticmethod
    def from_seed(seed: bytes) -> "CipherKeys":
        """HKDF-SHA256(salt empty, info "OLM_KEYS") -> 32 + 32 + 16 bytes."""
        derived = hkdf_sha256(ikm=seed, salt=None, info=KEYS_INFO, length=80)
        return CipherKeys(aes_key=derived[:32], mac_key=derived[32:64], iv=derived[64:80])

    def mac(self, message: Message) -> bytes:
        return hmac_sha256(self.mac_key, message.mac_input())[:MAC_LENGTH]


class MessageKey:
    """Key for exactly one outgoing message."""

    def __init__(self, seed: bytes, ratchet_key: RemoteRatchetKey, index: int):
        self._seed = bytes(seed)
        self.ratchet_key = ratchet_key
        self.index = index

    def encrypt(self, plaintext: bytes) -> Message:
        keys = CipherKeys.from_seed(self._seed)
        ciphertext = aes256_cbc_encrypt(keys.aes_key, keys.iv, plaintext)
        unsigned = Message(ratchet_key=self.ratchet_key, chain_index=self.index, ciphertext=ciphertext)
        return replace(unsigned, mac=keys.mac(unsigned))

    def __repr__(self) -> str:
        return f"MessageKey(index={self.index})"


class RemoteMessageKey:
    """Key for exactly one incoming message, identified by (ratchet key, index)."""

    def __init__(self, seed: bytes, ratchet_key: RemoteRatchetKey, index: int):
        self._seed = bytes(seed)
        self.ratchet_key = ratchet_key
        self.index = index

    def decrypt(self, message: Message) -> bytes:
        """
        Verify the MAC, then decrypt.

        Raises:
            AuthenticationFailed: On any MAC mismatch or undecryptable payload
        """
        keys = CipherKeys.from_seed(self._seed)
        if not constant_time_compare(keys.mac(message), message.mac):
            raise AuthenticationFailed("Message MAC mismatch")
        return aes256_cbc_decrypt(keys.aes_key, keys.iv, message.ciphertext)

    def to_dict(self) -> dict:
        return {
            "seed": b64e(self._seed),
            "ratchet_key": self.ratchet_key.to_base64(),
            "index": self.index,
        }

    @staticmethod
    def from_dict(d: dict) -> "RemoteMessageKey":
        return RemoteMessageKey(
            seed=b64d(d["seed"]),
            ratchet_key=RemoteRatchetKey.from_base64(d["ratchet_key"]),
            index=int(d["index"]),
        )

    def __repr__(self) -> str:
        return f"RemoteMessageKey(index={self.index})"
