"""Exceptions raised by :mod:`olmsession`.

Backend errors from ``cryptography`` are translated into this small set so
callers never depend on implementation details.
"""

from __future__ import annotations


class OlmError(Exception):
    """Base error for every session operation."""


class InvalidKey(OlmError):
    """Raised when public key material is malformed or not a usable curve point."""


class DecodeError(OlmError):
    """Raised when a message does not follow the wire framing."""


class AuthenticationFailed(OlmError):
    """Raised when a message MAC does not verify or the payload cannot be decrypted."""


class SkippedKeyExhausted(OlmError):
    """Raised when no message key can be produced for the requested chain index."""


class ProtocolStateError(OlmError):
    """Raised when an operation is not valid in the current ratchet state."""


class PickleError(DecodeError):
    """Raised when a pickled session cannot be restored."""
