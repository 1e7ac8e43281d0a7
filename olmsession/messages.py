"""
Wire framing for Olm messages.

Both shapes are a version byte followed by a protobuf body (see
``wire.py`` for the schema):

Normal message (message_type 1):
    0x03
    NormalMessage { ratchet_key = 1, chain_index = 2, ciphertext = 4 }
    mac                         (8 bytes, not part of the protobuf body)

PreKey message (message_type 0):
    0x03
    PreKeyMessage { one_time_key = 1, base_key = 2, identity_key = 3, message = 4 }

The MAC of a normal message covers every byte before it, exactly as
received. Fields this version does not know about are skipped when
decoding but stay covered by the MAC.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from google.protobuf.message import DecodeError as ProtobufDecodeError

from .errors import DecodeError, InvalidKey
from .keys import Curve25519PublicKey
from .primitive import b64e, b64d
from .wire import NormalMessageProto, PreKeyMessageProto

VERSION = 3
MAC_LENGTH = 8

PREKEY_MESSAGE_TYPE = 0
NORMAL_MESSAGE_TYPE = 1


def _check_version(data: bytes) -> None:
    if not data:
        raise DecodeError("Empty message")
    if data[0] != VERSION:
        raise DecodeError(f"Unsupported message version {data[0]}")


def _parse(proto_class, body: bytes, what: str):
    try:
        return proto_class.FromString(body)
    except ProtobufDecodeError as e:
        raise DecodeError(f"Malformed {what}: {e}") from e


def _required_key(proto, name: str, label: str) -> Curve25519PublicKey:
    if not proto.HasField(name):
        raise DecodeError(f"Missing {label}")
    try:
        return Curve25519PublicKey(getattr(proto, name))
    except InvalidKey as e:
        raise DecodeError(f"Malformed {label}") from e


@dataclass(frozen=True)
class Message:
    """
    A normal message: ratchet metadata, ciphertext and MAC.

    Attributes:
        ratchet_key: Sender's current ratchet public key
        chain_index: Index of the message key in the sender's chain
        ciphertext: AES-256-CBC ciphertext
        mac: Truncated HMAC over the encoded fields
    """
    ratchet_key: Curve25519PublicKey
    chain_index: int
    ciphertext: bytes
    mac: bytes = field(default=b"\x00" * MAC_LENGTH, repr=False)
    version: int = VERSION
    # Bytes the MAC was computed over when this message was decoded.
    # Not copied by dataclasses.replace(), so edited messages are re-encoded.
    _received: Optional[bytes] = field(default=None, init=False, compare=False, repr=False)

    message_type = NORMAL_MESSAGE_TYPE

    def mac_input(self) -> bytes:
        """Everything the MAC covers: the received bytes, or a fresh encoding."""
        if self._received is not None:
            return self._received
        body = NormalMessageProto(
            ratchet_key=self.ratchet_key.to_bytes(),
            chain_index=self.chain_index,
            ciphertext=self.ciphertext,
        )
        return bytes([self.version]) + body.SerializeToString()

    def to_bytes(self) -> bytes:
        return self.mac_input() + self.mac

    def to_base64(self) -> str:
        return b64e(self.to_bytes())

    @staticmethod
    def from_bytes(data: bytes) -> "Message":
        data = bytes(data)
        _check_version(data)
        if len(data) < 1 + MAC_LENGTH:
            raise DecodeError("Message is too short")

        received = data[:-MAC_LENGTH]
        body = _parse(NormalMessageProto, received[1:], "message")
        ratchet_key = _required_key(body, "ratchet_key", "ratchet key")
        if not body.HasField("chain_index"):
            raise DecodeError("Missing chain index")
        if not body.HasField("ciphertext"):
            raise DecodeError("Missing ciphertext")

        message = Message(
            ratchet_key=ratchet_key,
            chain_index=body.chain_index,
            ciphertext=body.ciphertext,
            mac=data[-MAC_LENGTH:],
            version=data[0],
        )
        object.__setattr__(message, "_received", received)
        return message

    @staticmethod
    def from_base64(s: str) -> "Message":
        return Message.from_bytes(b64d(s))


@dataclass(frozen=True)
class PreKeyMessage:
    """
    A normal message wrapped with the initiator's handshake keys.

    Attributes:
        one_time_key: Responder's one-time key the initiator claimed
        base_key: Initiator's ephemeral key
        identity_key: Initiator's identity key
        message: The embedded normal message
    """
    one_time_key: Curve25519PublicKey
    base_key: Curve25519PublicKey
    identity_key: Curve25519PublicKey
    message: Message
    version: int = VERSION

    message_type = PREKEY_MESSAGE_TYPE

    def to_bytes(self) -> bytes:
        body = PreKeyMessageProto(
            one_time_key=self.one_time_key.to_bytes(),
            base_key=self.base_key.to_bytes(),
            identity_key=self.identity_key.to_bytes(),
            message=self.message.to_bytes(),
        )
        return bytes([self.version]) + body.SerializeToString()

    def to_base64(self) -> str:
        return b64e(self.to_bytes())

    @staticmethod
    def from_bytes(data: bytes) -> "PreKeyMessage":
        data = bytes(data)
        _check_version(data)

        body = _parse(PreKeyMessageProto, data[1:], "prekey message")
        if not body.HasField("message"):
            raise DecodeError("Missing embedded message")

        return PreKeyMessage(
            one_time_key=_required_key(body, "one_time_key", "one-time key"),
            base_key=_required_key(body, "base_key", "base key"),
            identity_key=_required_key(body, "identity_key", "identity key"),
            message=Message.from_bytes(body.message),
            version=data[0],
        )

    @staticmethod
    def from_base64(s: str) -> "PreKeyMessage":
        return PreKeyMessage.from_bytes(b64d(s))


OlmMessage = Union[Message, PreKeyMessage]


def olm_message_from_parts(message_type: int, body: str) -> OlmMessage:
    """Rebuild a message from the (type, base64 body) pair used by transports."""
    if message_type == PREKEY_MESSAGE_TYPE:
        return PreKeyMessage.from_base64(body)
    if message_type == NORMAL_MESSAGE_TYPE:
        return Message.from_base64(body)
    raise DecodeError(f"Unknown message type {message_type}")


def olm_message_to_parts(message: OlmMessage) -> Tuple[int, str]:
    return message.message_type, message.to_base64()
