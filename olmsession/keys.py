from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric import x25519

from .errors import InvalidKey
from .primitive import (
    b64e, b64d,
    dh, sha256,
    x25519_pub_to_bytes, x25519_pub_from_bytes,
    x25519_priv_to_bytes, x25519_priv_from_bytes,
)

KEY_LENGTH = 32


@dataclass(frozen=True)
class Curve25519PublicKey:
    """Raw 32-byte Curve25519 public key."""
    key: bytes

    def __post_init__(self):
        if not isinstance(self.key, (bytes, bytearray)) or len(self.key) != KEY_LENGTH:
            raise InvalidKey("Curve25519 public keys are exactly 32 bytes")
        object.__setattr__(self, "key", bytes(self.key))

    @staticmethod
    def from_bytes(raw: bytes) -> "Curve25519PublicKey":
        return Curve25519PublicKey(raw)

    @staticmethod
    def from_base64(s: str) -> "Curve25519PublicKey":
        return Curve25519PublicKey(b64d(s))

    def to_bytes(self) -> bytes:
        return self.key

    def to_base64(self) -> str:
        return b64e(self.key)

    def to_x25519(self) -> x25519.X25519PublicKey:
        return x25519_pub_from_bytes(self.key)

    def __repr__(self) -> str:
        return f"Curve25519PublicKey({self.to_base64()})"


class Curve25519SecretKey:
    """Curve25519 private key; never printed, compared or logged."""

    def __init__(self, private_key: x25519.X25519PrivateKey):
        self._private_key = private_key

    @staticmethod
    def generate() -> "Curve25519SecretKey":
        return Curve25519SecretKey(x25519.X25519PrivateKey.generate())

    @staticmethod
    def from_bytes(raw: bytes) -> "Curve25519SecretKey":
        return Curve25519SecretKey(x25519_priv_from_bytes(raw))

    def to_bytes(self) -> bytes:
        return x25519_priv_to_bytes(self._private_key)

    def public_key(self) -> Curve25519PublicKey:
        return Curve25519PublicKey(x25519_pub_to_bytes(self._private_key.public_key()))

    def diffie_hellman(self, their_key: Curve25519PublicKey) -> bytes:
        return dh(self._private_key, their_key.to_x25519())

    def __repr__(self) -> str:
        return "Curve25519SecretKey(...)"


@dataclass(frozen=True)
class Curve25519KeyPair:
    secret_key: Curve25519SecretKey
    public_key: Curve25519PublicKey

    @staticmethod
    def generate() -> "Curve25519KeyPair":
        return Curve25519KeyPair.from_secret_key(Curve25519SecretKey.generate())

    @staticmethod
    def from_secret_key(secret_key: Curve25519SecretKey) -> "Curve25519KeyPair":
        return Curve25519KeyPair(secret_key, secret_key.public_key())

    def diffie_hellman(self, their_key: Curve25519PublicKey) -> bytes:
        return self.secret_key.diffie_hellman(their_key)


# Handshake and ratchet roles share one representation.
IdentityKey = Curve25519PublicKey
EphemeralKey = Curve25519PublicKey
OneTimeKey = Curve25519PublicKey
RemoteRatchetKey = Curve25519PublicKey
RatchetKey = Curve25519KeyPair


class KeyGenerator(ABC):
    """Source of fresh Curve25519 key pairs for ratchet activation."""

    @abstractmethod
    def generate_key_pair(self) -> Curve25519KeyPair:
        """Return a new key pair."""


class RandomKeyGenerator(KeyGenerator):
    def generate_key_pair(self) -> Curve25519KeyPair:
        return Curve25519KeyPair.generate()


@dataclass(frozen=True)
class SessionKeys:
    """
    Public handshake keys, seen from the initiator.

    Attributes:
        identity_key: Initiator's long-term identity key
        ephemeral_key: Initiator's ephemeral (base) key
        one_time_key: Responder's one-time key that was claimed
    """
    identity_key: IdentityKey
    ephemeral_key: EphemeralKey
    one_time_key: OneTimeKey

    def session_id(self) -> str:
        """Stable identifier: unpadded base64 of SHA-256 over the three keys."""
        return b64e(sha256(
            self.identity_key.to_bytes()
            + self.ephemeral_key.to_bytes()
            + self.one_time_key.to_bytes()
        ))

    def to_dict(self) -> dict:
        return {
            "identity_key": self.identity_key.to_base64(),
            "ephemeral_key": self.ephemeral_key.to_base64(),
            "one_time_key": self.one_time_key.to_base64(),
        }

    @staticmethod
    def from_dict(d: dict) -> "SessionKeys":
        return SessionKeys(
            identity_key=Curve25519PublicKey.from_base64(d["identity_key"]),
            ephemeral_key=Curve25519PublicKey.from_base64(d["ephemeral_key"]),
            one_time_key=Curve25519PublicKey.from_base64(d["one_time_key"]),
        )
