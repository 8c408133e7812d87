"""Error types raised by the Weixin gateway."""

from __future__ import annotations


class WeixinError(Exception):
    """Base class for every error raised by this package."""


class CredentialError(WeixinError):
    """A credential (access token or ticket) could not be fetched."""


class TransportError(WeixinError):
    """Network failure or timeout talking to the platform."""


class DecodeError(WeixinError):
    """A platform or webhook payload could not be decoded."""


class APIError(WeixinError):
    """The platform answered with a non-zero ``errcode``."""

    def __init__(self, code: int, message: str, url: str = "") -> None:
        super().__init__(f"Weixin API error [{code}]: {message}")
        self.code = code
        self.message = message
        self.url = url


class TooManyAttemptsError(WeixinError):
    """The retry bound was reached without a successful call."""

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f"Weixin request failed after {attempts} attempts: {url}")
        self.url = url
        self.attempts = attempts


class VerificationError(WeixinError):
    """An inbound webhook payload failed verification."""


class SignatureError(VerificationError):
    """Signature mismatch."""


class DecryptError(VerificationError):
    """Encrypted envelope is malformed or cannot be decrypted."""
