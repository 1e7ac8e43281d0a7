"""
Session creation from raw handshake keys.

These helpers stand in for the account layer: the caller owns identity
and one-time keys and hands them in directly.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import SessionConfig
from .errors import ProtocolStateError
from .keys import (
    Curve25519KeyPair,
    IdentityKey,
    KeyGenerator,
    OneTimeKey,
    RandomKeyGenerator,
)
from .messages import PreKeyMessage
from .session import Session
from .shared_secret import RemoteShared3DHSecret, Shared3DHSecret

logger = logging.getLogger(__name__)


@dataclass
class InboundCreationResult:
    session: Session
    plaintext: bytes


def create_outbound_session(
    identity_keypair: Curve25519KeyPair,
    their_identity_key: IdentityKey,
    their_one_time_key: OneTimeKey,
    key_generator: Optional[KeyGenerator] = None,
    config: Optional[SessionConfig] = None,
) -> Session:
    """
    Start a session with a peer whose identity and one-time key we fetched.

    A fresh ephemeral key is drawn from ``key_generator``; it travels in
    every prekey message until the peer answers.
    """
    key_generator = key_generator or RandomKeyGenerator()
    ephemeral_keypair = key_generator.generate_key_pair()

    shared_secret = Shared3DHSecret.from_keys(
        identity_keypair=identity_keypair,
        ephemeral_keypair=ephemeral_keypair,
        their_identity_key=their_identity_key,
        their_one_time_key=their_one_time_key,
    )
    return Session.new(shared_secret, shared_secret.session_keys, key_generator, config)


def create_inbound_session(
    identity_keypair: Curve25519KeyPair,
    one_time_keypair: Curve25519KeyPair,
    message: PreKeyMessage,
    their_identity_key: Optional[IdentityKey] = None,
    key_generator: Optional[KeyGenerator] = None,
    config: Optional[SessionConfig] = None,
) -> InboundCreationResult:
    """
    Answer a prekey message: build the responder session and decrypt the message.

    The caller is expected to remove ``one_time_keypair`` from its store
    once this returns.

    Raises:
        ProtocolStateError: If the message names another one-time key or identity
        AuthenticationFailed: If the embedded message does not authenticate
    """
    if message.one_time_key != one_time_keypair.public_key:
        raise ProtocolStateError("Prekey message was sent to a different one-time key")
    if their_identity_key is not None and their_identity_key != message.identity_key:
        raise ProtocolStateError("Prekey message was sent by a different identity")

    shared_secret = RemoteShared3DHSecret.from_keys(
        identity_keypair=identity_keypair,
        one_time_keypair=one_time_keypair,
        their_identity_key=message.identity_key,
        their_ephemeral_key=message.base_key,
    )
    session = Session.new_remote(shared_secret, message.message.ratchet_key, key_generator, config)
    plaintext = session.decrypt(message)
    logger.debug("Accepted inbound session %s", session.session_id())
    return InboundCreationResult(session=session, plaintext=plaintext)
