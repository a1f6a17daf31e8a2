"""
Session store configuration using Pydantic Settings.

Configuration values can be set via environment variables (prefixed with
``SESSION_``) or a .env file.
"""

import json
from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from sessionstore.core.security import KeyPair
from sessionstore.store import SessionOptions

# Minimum length of a signing key, in bytes
MIN_HASH_KEY_LENGTH = 32


class SessionSettings(BaseSettings):
    """Session store settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_url: str = "sqlite:///./data/sessions.db"

    # Cookie defaults, copied into every new session
    cookie_name: str = "session"
    max_age: int = 86400 * 30
    path: str = "/"
    domain: Optional[str] = None
    secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"

    # Signing keys, "hash_key[:block_key]". The first pair signs new cookies,
    # every pair is tried when reading one.
    secret_keys: Annotated[list[str], NoDecode]

    # Logging
    log_level: str = "INFO"
    json_logging: bool = True

    @field_validator("same_site", mode="before")
    @classmethod
    def normalize_same_site(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("secret_keys", mode="before")
    @classmethod
    def parse_secret_keys(cls, v):
        """Accept a JSON list or a comma separated string"""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return []
            if v.startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("secret_keys")
    @classmethod
    def validate_secret_keys(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one signing key pair is required")
        for entry in v:
            hash_key = entry.split(":", 1)[0]
            if len(hash_key.encode("utf-8")) < MIN_HASH_KEY_LENGTH:
                raise ValueError(
                    f"Signing keys must be at least {MIN_HASH_KEY_LENGTH} bytes long"
                )
        return v

    def key_pairs(self) -> list[KeyPair]:
        """Return the configured key pairs, primary pair first"""
        pairs = []
        for entry in self.secret_keys:
            hash_key, _, block_key = entry.partition(":")
            pairs.append(
                KeyPair(
                    hash_key=hash_key.encode("utf-8"),
                    block_key=block_key.encode("utf-8") if block_key else None,
                )
            )
        return pairs

    def default_options(self) -> SessionOptions:
        """Return the cookie options every new session starts from"""
        return SessionOptions(
            path=self.path,
            max_age=self.max_age,
            domain=self.domain,
            secure=self.secure,
            http_only=self.http_only,
            same_site=self.same_site,
        )


@lru_cache
def get_settings() -> SessionSettings:
    """Load settings once per process"""
    return SessionSettings()
