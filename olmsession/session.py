"""
Olm session: one conversation with one peer.

A session owns one sending ratchet (``InactiveRatchet`` or
``ActiveRatchet``), at most one receiving ratchet and a cache of skipped
message keys. Until the peer has proven that it holds the handshake keys
(our first successful decrypt), outgoing messages are wrapped in a
``PreKeyMessage`` so that the peer can create its side of the session.

Every decrypt is computed against the current state and only committed
once the message has authenticated; a failed decrypt leaves the session
exactly as it was.
"""

import json
import logging
from typing import Optional, Union

from .config import SessionConfig
from .double_ratchet import (
    ActiveRatchet,
    InactiveRatchet,
    LocalDoubleRatchet,
    RemoteDoubleRatchet,
    SkippedMessageKeys,
    local_ratchet_from_dict,
)
from .errors import (
    DecodeError,
    InvalidKey,
    OlmError,
    PickleError,
    ProtocolStateError,
)
from .keys import (
    IdentityKey,
    KeyGenerator,
    RandomKeyGenerator,
    RemoteRatchetKey,
    SessionKeys,
)
from .messages import Message, OlmMessage, PreKeyMessage
from .shared_secret import RemoteShared3DHSecret, Shared3DHSecret

logger = logging.getLogger(__name__)

PICKLE_VERSION = 1


class Session:

    def __init__(
        self,
        session_id: str,
        session_keys: Optional[SessionKeys],
        sending_ratchet: LocalDoubleRatchet,
        receiving_ratchet: Optional[RemoteDoubleRatchet],
        skipped_keys: Optional[SkippedMessageKeys] = None,
        key_generator: Optional[KeyGenerator] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.config = config or SessionConfig()
        self._session_id = session_id
        self._session_keys = session_keys
        self._sending_ratchet = sending_ratchet
        self._receiving_ratchet = receiving_ratchet
        self._skipped_keys = skipped_keys if skipped_keys is not None else SkippedMessageKeys(self.config)
        self._key_generator = key_generator or RandomKeyGenerator()

    @classmethod
    def new(
        cls,
        shared_secret: Shared3DHSecret,
        session_keys: SessionKeys,
        key_generator: Optional[KeyGenerator] = None,
        config: Optional[SessionConfig] = None,
    ) -> "Session":
        """Initiator session: ready to send, nothing to receive on yet."""
        key_generator = key_generator or RandomKeyGenerator()
        sending_ratchet = ActiveRatchet.from_shared_secret(shared_secret, key_generator)
        session = cls(
            session_id=session_keys.session_id(),
            session_keys=session_keys,
            sending_ratchet=sending_ratchet,
            receiving_ratchet=None,
            key_generator=key_generator,
            config=config,
        )
        logger.debug("Created outbound session %s", session.session_id())
        return session

    @classmethod
    def new_remote(
        cls,
        shared_secret: RemoteShared3DHSecret,
        remote_ratchet_key: RemoteRatchetKey,
        key_generator: Optional[KeyGenerator] = None,
        config: Optional[SessionConfig] = None,
    ) -> "Session":
        """Responder session: can decrypt the initiator's chain right away, sends lazily."""
        session_id = shared_secret.session_keys.session_id()
        root_key, remote_chain_key = shared_secret.expand()
        session = cls(
            session_id=session_id,
            session_keys=None,
            sending_ratchet=InactiveRatchet(root_key, remote_ratchet_key),
            receiving_ratchet=RemoteDoubleRatchet(remote_ratchet_key, remote_chain_key),
            key_generator=key_generator,
            config=config,
        )
        logger.debug("Created inbound session %s", session.session_id())
        return session

    # ============================================
    # Identification
    # ============================================

    def session_id(self) -> str:
        return self._session_id

    @property
    def session_keys(self) -> Optional[SessionKeys]:
        return self._session_keys

    @property
    def sending_ratchet(self) -> LocalDoubleRatchet:
        return self._sending_ratchet

    @property
    def receiving_ratchet(self) -> Optional[RemoteDoubleRatchet]:
        return self._receiving_ratchet

    @property
    def skipped_keys(self) -> SkippedMessageKeys:
        return self._skipped_keys

    def has_received_message(self) -> bool:
        return self._session_keys is None

    def matches_inbound_session(self, message: PreKeyMessage) -> bool:
        """Does this session belong to the handshake carried by ``message``?"""
        keys = SessionKeys(
            identity_key=message.identity_key,
            ephemeral_key=message.base_key,
            one_time_key=message.one_time_key,
        )
        return keys.session_id() == self._session_id

    def matches_inbound_session_from(self, their_identity_key: Union[IdentityKey, str], message: PreKeyMessage) -> bool:
        """Like ``matches_inbound_session``, but also requires the sender's identity key."""
        if isinstance(their_identity_key, str):
            try:
                their_identity_key = IdentityKey.from_base64(their_identity_key)
            except (DecodeError, InvalidKey):
                return False
        return their_identity_key == message.identity_key and self.matches_inbound_session(message)

    # ============================================
    # Encrypt
    # ============================================

    def encrypt(self, plaintext: Union[bytes, str]) -> OlmMessage:
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")

        ratchet = self._sending_ratchet
        if isinstance(ratchet, InactiveRatchet):
            ratchet = ratchet.activate(self._key_generator)
        elif not isinstance(ratchet, ActiveRatchet):
            raise ProtocolStateError(f"Unknown sending ratchet state {ratchet!r}")

        message = ratchet.encrypt(plaintext)
        self._sending_ratchet = ratchet

        if self._session_keys is not None:
            return PreKeyMessage(
                one_time_key=self._session_keys.one_time_key,
                base_key=self._session_keys.ephemeral_key,
                identity_key=self._session_keys.identity_key,
                message=message,
            )
        return message

    # ============================================
    # Decrypt
    # ============================================

    def decrypt(self, message: OlmMessage) -> bytes:
        """
        Decrypt a normal or prekey message.

        Raises:
            DecodeError: Message is not a known message shape
            AuthenticationFailed: MAC mismatch or undecryptable payload
            SkippedKeyExhausted: Message key is no longer (or not yet) derivable
            ProtocolStateError: Message cannot be placed on any ratchet
        """
        if isinstance(message, PreKeyMessage):
            inner = message.message
        elif isinstance(message, Message):
            inner = message
        else:
            raise DecodeError(f"Unsupported message type {type(message).__name__}")

        try:
            return self._decrypt_normal(inner)
        except OlmError as e:
            logger.warning("Session %s failed to decrypt message: %s", self._session_id, type(e).__name__)
            raise

    def _decrypt_normal(self, message: Message) -> bytes:
        cached = self._skipped_keys.get(message.ratchet_key, message.chain_index)
        if cached is not None:
            plaintext = cached.decrypt(message)
            self._skipped_keys.remove(message.ratchet_key, message.chain_index)
            self._session_keys = None
            return plaintext

        receiving = self._receiving_ratchet
        sending = self._sending_ratchet

        ratcheted = False
        if receiving is not None and receiving.belongs_to(message.ratchet_key):
            candidate = receiving
        elif isinstance(sending, ActiveRatchet):
            sending, candidate = sending.advance(message.ratchet_key)
            ratcheted = True
        elif isinstance(sending, InactiveRatchet):
            raise ProtocolStateError("Peer changed its ratchet key before we sent on the current one")
        else:
            raise ProtocolStateError(f"Unknown sending ratchet state {sending!r}")

        plaintext, skipped, receiving = candidate.decrypt(message, self.config.max_message_gap)

        if ratcheted:
            logger.debug(
                "Session %s ratcheted to remote key %s",
                self._session_id,
                message.ratchet_key.to_base64(),
            )
        self._sending_ratchet = sending
        self._receiving_ratchet = receiving
        self._skipped_keys.add(skipped)
        self._skipped_keys.prune(message.ratchet_key, message.chain_index + 1)
        self._session_keys = None
        return plaintext

    # ============================================
    # Persistence
    # ============================================

    def to_dict(self) -> dict:
        return {
            "version": PICKLE_VERSION,
            "session_id": self._session_id,
            "session_keys": self._session_keys.to_dict() if self._session_keys else None,
            "sending_ratchet": self._sending_ratchet.to_dict(),
            "receiving_ratchet": self._receiving_ratchet.to_dict() if self._receiving_ratchet else None,
            "skipped_keys": self._skipped_keys.to_list(),
            "config": self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict, key_generator: Optional[KeyGenerator] = None) -> "Session":
        if d.get("version") != PICKLE_VERSION:
            raise PickleError(f"Unsupported pickle version {d.get('version')!r}")
        try:
            config = SessionConfig.from_dict(d.get("config", {}))
            return cls(
                session_id=d["session_id"],
                session_keys=SessionKeys.from_dict(d["session_keys"]) if d.get("session_keys") else None,
                sending_ratchet=local_ratchet_from_dict(d["sending_ratchet"]),
                receiving_ratchet=(
                    RemoteDoubleRatchet.from_dict(d["receiving_ratchet"])
                    if d.get("receiving_ratchet") else None
                ),
                skipped_keys=SkippedMessageKeys.from_list(d.get("skipped_keys", []), config),
                key_generator=key_generator,
                config=config,
            )
        except PickleError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError, OlmError) as e:
            raise PickleError(f"Malformed session pickle: {e}") from e

    def pickle(self) -> str:
        """Serialize the full session state. The result holds secret keys in the clear."""
        return json.dumps(self.to_dict(), separators=(',', ':'), sort_keys=True)

    @classmethod
    def unpickle(cls, pickle: str, key_generator: Optional[KeyGenerator] = None) -> "Session":
        try:
            d = json.loads(pickle)
        except (TypeError, ValueError) as e:
            raise PickleError(f"Session pickle is not valid JSON: {e}") from e
        if not isinstance(d, dict):
            raise PickleError("Session pickle must be a JSON object")
        return cls.from_dict(d, key_generator)

    def __repr__(self) -> str:
        return f"Session(session_id={self._session_id})"
