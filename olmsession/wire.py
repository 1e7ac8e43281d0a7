"""
Protobuf schema of the Olm message bodies.

Equivalent to::

    syntax = "proto2";
    package olmsession;

    message NormalMessage {
        optional bytes ratchet_key = 1;
        optional uint32 chain_index = 2;
        optional bytes ciphertext = 4;
    }

    message PreKeyMessage {
        optional bytes one_time_key = 1;
        optional bytes base_key = 2;
        optional bytes identity_key = 3;
        optional bytes message = 4;
    }

The descriptors are built at import time, so no generated ``_pb2`` module
has to be kept in sync. The version byte and the MAC live outside these
messages and are handled in ``messages.py``.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_FILE_NAME = "olmsession/olm.proto"
_PACKAGE = "olmsession"

_BYTES = descriptor_pb2.FieldDescriptorProto.TYPE_BYTES
_UINT32 = descriptor_pb2.FieldDescriptorProto.TYPE_UINT32
_OPTIONAL = descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL

_SCHEMA = {
    "NormalMessage": [
        ("ratchet_key", 1, _BYTES),
        ("chain_index", 2, _UINT32),
        ("ciphertext", 4, _BYTES),
    ],
    "PreKeyMessage": [
        ("one_time_key", 1, _BYTES),
        ("base_key", 2, _BYTES),
        ("identity_key", 3, _BYTES),
        ("message", 4, _BYTES),
    ],
}


def _build_pool() -> descriptor_pool.DescriptorPool:
    file_proto = descriptor_pb2.FileDescriptorProto(name=_FILE_NAME, package=_PACKAGE, syntax="proto2")
    for message_name, fields in _SCHEMA.items():
        message_proto = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type in fields:
            message_proto.field.add(name=field_name, number=number, type=field_type, label=_OPTIONAL)

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(file_proto.SerializeToString())
    return pool


_pool = _build_pool()

NormalMessageProto = message_factory.GetMessageClass(
    _pool.FindMessageTypeByName(f"{_PACKAGE}.NormalMessage")
)
PreKeyMessageProto = message_factory.GetMessageClass(
    _pool.FindMessageTypeByName(f"{_PACKAGE}.PreKeyMessage")
)
