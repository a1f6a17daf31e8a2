"""
Security utilities for the session store

This module provides session identifier generation and the cookie
authenticator that signs (and optionally encrypts) the identifier carried
in the session cookie.
"""

import base64
import logging
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from itsdangerous import BadData, URLSafeTimedSerializer

from sessionstore.core.errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

# Bytes of randomness behind every session identifier
SESSION_ID_BYTES = 32

# Browsers drop cookies larger than this
MAX_TOKEN_LENGTH = 4096


def generate_session_id() -> str:
    """
    Generate a new random session identifier.

    Returns:
        Unpadded base32 text of 32 random bytes (52 characters, A-Z and 2-7)
    """
    raw = secrets.token_bytes(SESSION_ID_BYTES)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


@dataclass(frozen=True)
class KeyPair:
    """A signing key with an optional encryption key"""

    hash_key: bytes
    block_key: Optional[bytes] = None

    def __repr__(self) -> str:  # pragma: no cover - keeps keys out of logs
        return f"KeyPair(encrypted={self.block_key is not None})"


def key_pairs_from(*keys: Optional[bytes]) -> list[KeyPair]:
    """
    Build key pairs from a flat list of keys.

    Keys are read as hash_key, block_key, hash_key, block_key, ... A missing
    or empty block key means the pair signs without encrypting.

    Raises:
        ConfigurationError: If no keys are given or a hash key is empty
    """
    if not keys:
        raise ConfigurationError("At least one signing key is required")

    pairs = []
    for i in range(0, len(keys), 2):
        hash_key = keys[i]
        block_key = keys[i + 1] if i + 1 < len(keys) else None
        if not hash_key:
            raise ConfigurationError(f"Hash key at position {i} is empty")
        pairs.append(KeyPair(hash_key=hash_key, block_key=block_key or None))
    return pairs


class CookieAuthenticator(Protocol):
    """Turns a cookie value into a tamper-evident token and back"""

    def encode(self, name: str, value: str) -> str: ...

    def decode(self, name: str, token: str) -> str: ...


class _PairCodec:
    """Signs and encrypts cookie values with a single key pair"""

    def __init__(self, pair: KeyPair):
        self.pair = pair
        self.cipher = self._create_cipher(pair.block_key) if pair.block_key else None

    @staticmethod
    def _create_cipher(block_key: bytes) -> Fernet:
        """Create a Fernet cipher from an arbitrary length block key."""
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=b"sessionstore-cookie",
        )
        return Fernet(base64.urlsafe_b64encode(hkdf.derive(block_key)))

    def serializer(self, name: str) -> URLSafeTimedSerializer:
        # The salt binds a token to the cookie it was issued for
        return URLSafeTimedSerializer(self.pair.hash_key, salt=f"sessionstore.cookie.{name}")

    def encode(self, name: str, value: str) -> str:
        payload = value
        if self.cipher is not None:
            payload = self.cipher.encrypt(value.encode("utf-8")).decode("ascii")
        return self.serializer(name).dumps(payload)

    def decode(self, name: str, token: str, max_age: Optional[int]) -> str:
        payload = self.serializer(name).loads(token, max_age=max_age)
        if not isinstance(payload, str):
            raise BadData("Cookie payload is not a string")
        if self.cipher is not None:
            return self.cipher.decrypt(payload.encode("ascii")).decode("utf-8")
        return payload


class SignedCookieAuthenticator:
    """
    Cookie authenticator backed by itsdangerous and Fernet.

    Encoding always uses the first key pair. Decoding tries every pair in
    order, so old keys can stay in the list while cookies signed with them
    are still in circulation.
    """

    def __init__(self, key_pairs: list[KeyPair], max_age: int = 86400 * 30):
        """
        Args:
            key_pairs: Key pairs, primary first
            max_age: Reject tokens signed more than this many seconds ago.
                Zero or negative disables the check.
        """
        if not key_pairs:
            raise ConfigurationError("At least one key pair is required")
        self.codecs = [_PairCodec(pair) for pair in key_pairs]
        self.max_age = max_age

    def encode(self, name: str, value: str) -> str:
        token = self.codecs[0].encode(name, value)
        if len(token) > MAX_TOKEN_LENGTH:
            raise AuthenticationError("Encoded cookie value is too long")
        return token

    def decode(self, name: str, token: str) -> str:
        """
        Verify a token and return the value it carries.

        Raises:
            AuthenticationError: If no key pair accepts the token
        """
        if not token or len(token) > MAX_TOKEN_LENGTH:
            raise AuthenticationError("Cookie value is empty or too long")

        max_age = self.max_age if self.max_age > 0 else None
        for index, codec in enumerate(self.codecs):
            try:
                value = codec.decode(name, token, max_age)
            except (BadData, InvalidToken, UnicodeError, ValueError):
                continue
            if index > 0:
                logger.debug("Cookie %r verified with secondary key pair %d", name, index)
            return value

        raise AuthenticationError(f"Cookie {name!r} failed verification with every key")
