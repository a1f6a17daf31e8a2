"""Server-side HTTP sessions stored in a SQL database"""

from sessionstore.core.codec import JSONValueCodec, ValueCodec
from sessionstore.core.errors import (
    AuthenticationError,
    CodecError,
    ConfigurationError,
    SessionError,
)
from sessionstore.core.security import (
    CookieAuthenticator,
    KeyPair,
    SignedCookieAuthenticator,
    generate_session_id,
    key_pairs_from,
)
from sessionstore.db.database import Database, SQLAlchemyDatabase
from sessionstore.store import Session, SessionOptions, SQLStore

__all__ = [
    "AuthenticationError",
    "CodecError",
    "ConfigurationError",
    "CookieAuthenticator",
    "Database",
    "JSONValueCodec",
    "KeyPair",
    "Session",
    "SessionError",
    "SessionOptions",
    "SignedCookieAuthenticator",
    "SQLAlchemyDatabase",
    "SQLStore",
    "ValueCodec",
    "generate_session_id",
    "key_pairs_from",
]
