"""Webhook signature checks and encrypted-envelope handling.

Plain mode signs each callback with::

    sha1(join(sorted([token, timestamp, nonce])))

Encrypted mode additionally signs the envelope with ``msg_signature`` over
``[token, timestamp, nonce, Encrypt]`` and carries an AES-256-CBC payload:

    random(16) + len(4, big-endian) + xml + app_id, PKCS#7 padded to 32 bytes

The key is ``base64(EncodingAESKey + "=")`` and the IV is the first 16
bytes of the key.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import struct

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptError, SignatureError


_PREFIX_SIZE = 16
_LENGTH_SIZE = 4
_HEADER_SIZE = _PREFIX_SIZE + _LENGTH_SIZE
_PAD_BLOCK = 32


def signature(*parts: str) -> str:
    """Sort *parts*, concatenate them and return the SHA-1 hex digest."""
    return hashlib.sha1("".join(sorted(parts)).encode("utf-8")).hexdigest()


def check_signature(token: str, timestamp: str, nonce: str, sig: str) -> bool:
    """Validate the ``signature`` query parameter of a callback."""
    expected = signature(token, timestamp, nonce)
    return hmac.compare_digest(expected, sig or "")


def decode_aes_key(key: str) -> bytes:
    """Decode a 43-character EncodingAESKey into the 32-byte AES key."""
    try:
        raw = base64.b64decode(key + "=", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid EncodingAESKey: {exc}") from exc
    if len(raw) != 32:
        raise ValueError(f"EncodingAESKey must decode to 32 bytes, got {len(raw)}")
    return raw


def _unpad(data: bytes) -> bytes:
    if not data:
        raise DecryptError("empty plaintext")
    pad = data[-1]
    if pad < 1 or pad > _PAD_BLOCK or pad > len(data):
        raise DecryptError(f"invalid padding length {pad}")
    return data[:-pad]


def _pad(data: bytes) -> bytes:
    pad = _PAD_BLOCK - len(data) % _PAD_BLOCK
    return data + bytes([pad]) * pad


class MessageCrypto:
    """Verifies and decrypts (or builds) encrypted callback envelopes."""

    def __init__(self, token: str, aes_key: bytes) -> None:
        if len(aes_key) != 32:
            raise ValueError("AES key must be 32 bytes")
        self._token = token
        self._key = aes_key

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._key[:_PREFIX_SIZE]))

    def decrypt(
        self, encrypted: str, timestamp: str, nonce: str, msg_signature: str
    ) -> bytes:
        """Return the inner XML of an encrypted envelope.

        The message signature is checked before any decryption is attempted.

        Raises:
            SignatureError: ``msg_signature`` does not match.
            DecryptError: the envelope is malformed or does not decrypt.
        """
        try:
            raw = base64.b64decode(encrypted, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptError(f"invalid base64 envelope: {exc}") from exc
        if len(raw) <= _HEADER_SIZE:
            raise DecryptError(f"envelope too short ({len(raw)} bytes)")

        expected = signature(self._token, timestamp, nonce, encrypted)
        if not hmac.compare_digest(expected, msg_signature or ""):
            raise SignatureError("msg_signature mismatch")

        try:
            decryptor = self._cipher().decryptor()
            plain = decryptor.update(raw) + decryptor.finalize()
        except ValueError as exc:
            raise DecryptError(f"AES decrypt failed: {exc}") from exc

        plain = _unpad(plain)
        if len(plain) < _HEADER_SIZE:
            raise DecryptError("plaintext shorter than its header")
        (length,) = struct.unpack(">I", plain[_PREFIX_SIZE:_HEADER_SIZE])
        end = _HEADER_SIZE + length
        if end > len(plain):
            raise DecryptError(f"declared length {length} exceeds plaintext")
        # Anything after the payload is the sender's app id.
        return plain[_HEADER_SIZE:end]

    def encrypt(self, xml: bytes | str, app_id: str = "", *, prefix: bytes | None = None) -> str:
        """Build the base64 ``Encrypt`` field for *xml*."""
        if isinstance(xml, str):
            xml = xml.encode("utf-8")
        if prefix is None:
            prefix = os.urandom(_PREFIX_SIZE)
        if len(prefix) != _PREFIX_SIZE:
            raise ValueError("prefix must be 16 bytes")
        plain = _pad(prefix + struct.pack(">I", len(xml)) + xml + app_id.encode("utf-8"))
        encryptor = self._cipher().encryptor()
        return base64.b64encode(encryptor.update(plain) + encryptor.finalize()).decode("ascii")

    def sign(self, timestamp: str, nonce: str, encrypted: str) -> str:
        """Return the ``msg_signature`` for an envelope."""
        return signature(self._token, timestamp, nonce, encrypted)
