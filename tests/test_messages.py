"""Wire codec tests for normal and prekey messages."""

from dataclasses import replace

import pytest

from olmsession import (
    Curve25519KeyPair,
    DecodeError,
    Message,
    PreKeyMessage,
    olm_message_from_parts,
    olm_message_to_parts,
)
from olmsession.messages import MAC_LENGTH


@pytest.fixture
def message():
    return Message(
        ratchet_key=Curve25519KeyPair.generate().public_key,
        chain_index=300,
        ciphertext=b"\xAA" * 32,
        mac=b"\x01" * MAC_LENGTH,
    )


@pytest.fixture
def prekey_message(message):
    return PreKeyMessage(
        one_time_key=Curve25519KeyPair.generate().public_key,
        base_key=Curve25519KeyPair.generate().public_key,
        identity_key=Curve25519KeyPair.generate().public_key,
        message=message,
    )


class TestNormalMessage:

    def test_layout(self, message):
        """Version byte, ratchet key field, index field, ciphertext field, then the MAC."""
        raw = message.to_bytes()

        assert raw[0] == 3
        assert raw[1:3] == b"\x0A\x20"
        assert raw[3:35] == message.ratchet_key.to_bytes()
        assert raw[35:38] == b"\x10\xAC\x02"
        assert raw[38:40] == b"\x22\x20"
        assert raw[-MAC_LENGTH:] == message.mac
        assert message.mac_input() == raw[:-MAC_LENGTH]

    def test_decode(self, message):
        decoded = Message.from_bytes(message.to_bytes())

        assert decoded == message
        assert decoded.message_type == 1

    def test_unknown_field_skipped(self, message):
        body = message.mac_input()
        # insert an unknown varint field (field 5) after the chain index
        with_extra = body[:38] + b"\x28\x07" + body[38:]

        decoded = Message.from_bytes(with_extra + message.mac)

        assert decoded.ratchet_key == message.ratchet_key
        assert decoded.ciphertext == message.ciphertext

    def test_unknown_fixed_width_fields_skipped(self, message):
        """Fields with 32-bit and 64-bit wire types are skipped like any other."""
        extra = b"\x35" + b"\x01" * 4 + b"\x39" + b"\x02" * 8

        decoded = Message.from_bytes(message.mac_input() + extra + message.mac)

        assert decoded.chain_index == message.chain_index
        assert decoded.ciphertext == message.ciphertext

    def test_mac_input_is_received_bytes(self, message):
        """A decoded message authenticates the bytes it arrived as, not a re-encoding."""
        body = message.mac_input() + b"\x2A\x10future-extension"

        decoded = Message.from_bytes(body + message.mac)

        assert decoded.mac_input() == body
        assert decoded.to_bytes() == body + message.mac
        assert decoded == message

    def test_non_minimal_index_encoding_kept(self, message):
        raw = message.mac_input()
        # chain index 1 written as a two-byte varint
        body = raw[:35] + b"\x10\x81\x00" + raw[38:]

        decoded = Message.from_bytes(body + message.mac)

        assert decoded.chain_index == 1
        assert decoded.mac_input() == body

    def test_edited_message_is_reencoded(self, message):
        decoded = Message.from_bytes(message.mac_input() + b"\x2A\x01x" + message.mac)

        edited = replace(decoded, ciphertext=b"\xBB" * 32)

        assert edited.mac_input() == replace(message, ciphertext=b"\xBB" * 32).mac_input()

    def test_malformed_protobuf_body(self):
        raw = b"\x03" + b"\x0A\x7F" + b"\x01" * 4 + b"\x00" * MAC_LENGTH

        with pytest.raises(DecodeError):
            Message.from_bytes(raw)

    def test_wrong_version(self, message):
        raw = bytearray(message.to_bytes())
        raw[0] = 2

        with pytest.raises(DecodeError):
            Message.from_bytes(bytes(raw))

    def test_truncated(self, message):
        with pytest.raises(DecodeError):
            Message.from_bytes(message.to_bytes()[:-3])

    def test_empty(self):
        with pytest.raises(DecodeError):
            Message.from_bytes(b"")

    def test_missing_chain_index(self, message):
        raw = message.mac_input()
        without_index = raw[:35] + raw[38:]

        with pytest.raises(DecodeError):
            Message.from_bytes(without_index + message.mac)

    def test_short_ratchet_key(self):
        raw = b"\x03" + b"\x0A\x10" + b"\x01" * 16 + b"\x10\x00" + b"\x22\x00" + b"\x00" * MAC_LENGTH

        with pytest.raises(DecodeError):
            Message.from_bytes(raw)

    def test_base64(self, message):
        assert Message.from_base64(message.to_base64()) == message

    def test_invalid_base64(self):
        with pytest.raises(DecodeError):
            Message.from_base64("not base64!")


class TestPreKeyMessage:

    def test_decode(self, prekey_message):
        decoded = PreKeyMessage.from_bytes(prekey_message.to_bytes())

        assert decoded == prekey_message
        assert decoded.message == prekey_message.message
        assert decoded.message_type == 0

    def test_layout(self, prekey_message):
        raw = prekey_message.to_bytes()

        assert raw[0] == 3
        assert raw[1:3] == b"\x0A\x20"
        assert raw[3:35] == prekey_message.one_time_key.to_bytes()
        assert raw[35:37] == b"\x12\x20"
        assert raw[69:71] == b"\x1A\x20"
        assert raw[103] == 0x22

    def test_missing_inner_message(self, prekey_message):
        raw = prekey_message.to_bytes()

        with pytest.raises(DecodeError):
            PreKeyMessage.from_bytes(raw[:103])

    def test_parts_round_trip(self, prekey_message, message):
        """Transport layers carry (type, base64 body) pairs."""
        for original in (prekey_message, message):
            message_type, body = olm_message_to_parts(original)
            assert olm_message_from_parts(message_type, body) == original

    def test_unknown_message_type(self, message):
        with pytest.raises(DecodeError):
            olm_message_from_parts(7, message.to_base64())
