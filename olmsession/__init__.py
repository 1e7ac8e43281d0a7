"""Olm-style 3DH + Double Ratchet session engine."""

from .config import SessionConfig

from .errors import (
    OlmError,
    InvalidKey,
    DecodeError,
    AuthenticationFailed,
    SkippedKeyExhausted,
    ProtocolStateError,
    PickleError,
)

from .keys import (
    Curve25519PublicKey,
    Curve25519SecretKey,
    Curve25519KeyPair,
    IdentityKey,
    EphemeralKey,
    OneTimeKey,
    RatchetKey,
    RemoteRatchetKey,
    KeyGenerator,
    RandomKeyGenerator,
    SessionKeys,
)

from .shared_secret import (
    Shared3DHSecret,
    RemoteShared3DHSecret,
)

from .messages import (
    Message,
    PreKeyMessage,
    OlmMessage,
    olm_message_from_parts,
    olm_message_to_parts,
)

from .session import Session

from .handshake import (
    InboundCreationResult,
    create_outbound_session,
    create_inbound_session,
)

__all__ = [
    # Config
    "SessionConfig",
    # Errors
    "OlmError",
    "InvalidKey",
    "DecodeError",
    "AuthenticationFailed",
    "SkippedKeyExhausted",
    "ProtocolStateError",
    "PickleError",
    # Keys
    "Curve25519PublicKey",
    "Curve25519SecretKey",
    "Curve25519KeyPair",
    "IdentityKey",
    "EphemeralKey",
    "OneTimeKey",
    "RatchetKey",
    "RemoteRatchetKey",
    "KeyGenerator",
    "RandomKeyGenerator",
    "SessionKeys",
    # 3DH
    "Shared3DHSecret",
    "RemoteShared3DHSecret",
    # Messages
    "Message",
    "PreKeyMessage",
    "OlmMessage",
    "olm_message_from_parts",
    "olm_message_to_parts",
    # Session
    "Session",
    "InboundCreationResult",
    "create_outbound_session",
    "create_inbound_session",
]
