import base64
import hmac

from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import AuthenticationFailed, DecodeError, InvalidKey


def b64e(b: bytes) -> str:
    """Unpadded base64, the text encoding used for keys and messages on the wire."""
    return base64.b64encode(b).decode("utf-8").rstrip("=")

def b64d(s: str) -> bytes:
    try:
        return base64.b64decode(s + "=" * (-len(s) % 4), validate=True)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"Invalid base64: {e}") from e

def x25519_pub_to_bytes(pub: x25519.X25519PublicKey) -> bytes:
    return pub.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)

def x25519_pub_from_bytes(raw: bytes) -> x25519.X25519PublicKey:
    try:
        return x25519.X25519PublicKey.from_public_bytes(bytes(raw))
    except ValueError as e:
        raise InvalidKey(f"Invalid Curve25519 public key: {e}") from e

def x25519_priv_to_bytes(priv: x25519.X25519PrivateKey) -> bytes:
    return priv.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )

def x25519_priv_from_bytes(raw: bytes) -> x25519.X25519PrivateKey:
    try:
        return x25519.X25519PrivateKey.from_private_bytes(bytes(raw))
    except ValueError as e:
        raise InvalidKey(f"Invalid Curve25519 secret key: {e}") from e

def dh(priv: x25519.X25519PrivateKey, pub: x25519.X25519PublicKey) -> bytes:
    # cryptography rejects low-order points (all-zero shared secret) with ValueError
    try:
        return priv.exchange(pub)
    except ValueError as e:
        raise InvalidKey(f"Diffie-Hellman with an invalid public key: {e}") from e

def hkdf_sha256(ikm: bytes, salt: bytes | None, info: bytes, length: int) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(bytes(ikm))

def hmac_sha256(key: bytes, data: bytes) -> bytes:
    h = crypto_hmac.HMAC(key, hashes.SHA256())
    h.update(data)
    return h.finalize()

def sha256(data: bytes) -> bytes:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data)
    return digest.finalize()

def constant_time_compare(a: bytes, b: bytes) -> bool:
    return hmac.compare_digest(a, b)

def aes256_cbc_encrypt(key32: bytes, iv16: bytes, plaintext: bytes) -> bytes:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key32), modes.CBC(iv16)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()

def aes256_cbc_decrypt(key32: bytes, iv16: bytes, ciphertext: bytes) -> bytes:
    if not ciphertext or len(ciphertext) % 16:
        raise AuthenticationFailed("Ciphertext is not a whole number of AES blocks")
    decryptor = Cipher(algorithms.AES(key32), modes.CBC(iv16)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise AuthenticationFailed("Invalid padding") from e
