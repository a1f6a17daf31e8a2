"""
SQL-backed session store.

The store reads the session identifier from a signed cookie, loads the
session row through a ``Database`` backend, checks it for expiry and
decodes its values. On the way out it encodes the values, inserts or
updates the row and signs the identifier into a fresh cookie.

Concurrent saves to the same session id are not coordinated: the last
update to reach the database wins.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Protocol

from starlette.requests import Request

from sessionstore.core.codec import JSONValueCodec, ValueCodec
from sessionstore.core.errors import AuthenticationError, CodecError, ConfigurationError
from sessionstore.core.security import (
    CookieAuthenticator,
    KeyPair,
    SignedCookieAuthenticator,
    generate_session_id,
)
from sessionstore.db.database import Database, utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = 86400 * 30

# Attribute on request.state holding the sessions obtained during a request
REGISTRY_ATTRIBUTE = "session_registry"


@dataclass
class SessionOptions:
    """Cookie attributes for a session. A negative max_age deletes the session on save."""

    path: str = "/"
    max_age: int = DEFAULT_MAX_AGE
    domain: Optional[str] = None
    secure: bool = False
    http_only: bool = True
    same_site: str = "lax"

    def copy(self) -> "SessionOptions":
        return replace(self)


class CookieWriter(Protocol):
    """Anything that can set a cookie the way starlette.responses.Response does"""

    def set_cookie(
        self,
        key: str,
        value: str = "",
        max_age: Optional[int] = None,
        expires: Any = None,
        path: Optional[str] = "/",
        domain: Optional[str] = None,
        secure: bool = False,
        httponly: bool = False,
        samesite: Optional[str] = "lax",
    ) -> None: ...


class Session:
    """A session owned by a single request/response cycle"""

    def __init__(self, store: "SQLStore", name: str):
        self.store = store
        self.name = name
        self.id = ""
        self.values: dict[Any, Any] = {}
        self.is_new = True
        self.options = store.options

    async def save(self, response: CookieWriter) -> None:
        """Persist the session and set its cookie on `response`"""
        await self.store.save(self, response)

    def __repr__(self) -> str:
        return f"<Session(name={self.name!r}, is_new={self.is_new}, keys={len(self.values)})>"


class SQLStore:
    """
    Session store persisting session values through a Database backend.

    One store is shared by every request. It holds only its configuration
    and the backend handle; sessions belong to the request that created
    them.
    """

    def __init__(
        self,
        database: Database,
        key_pairs: Optional[list[KeyPair]] = None,
        *,
        authenticator: Optional[CookieAuthenticator] = None,
        options: Optional[SessionOptions] = None,
        codec: Optional[ValueCodec] = None,
        id_generator: Callable[[], str] = generate_session_id,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            database: Backend holding the session rows
            key_pairs: Cookie signing keys, primary first. Ignored when an
                authenticator is given.
            authenticator: Cookie authenticator to use instead of one built
                from key_pairs
            options: Defaults copied into every new session
            codec: Serializer for session values
            id_generator: Produces identifiers for new sessions
            clock: Current time, compared against row updated_at for expiry
        """
        self.database = database
        self._options = (options or SessionOptions()).copy()
        if authenticator is None:
            if not key_pairs:
                raise ConfigurationError("Either key_pairs or an authenticator is required")
            authenticator = SignedCookieAuthenticator(key_pairs, max_age=self._options.max_age)
        self.authenticator = authenticator
        self.codec = codec or JSONValueCodec()
        self.id_generator = id_generator
        self.clock = clock

    @classmethod
    def from_settings(cls, database: Database, settings, **kwargs: Any) -> "SQLStore":
        """Build a store from SessionSettings"""
        return cls(
            database,
            settings.key_pairs(),
            options=settings.default_options(),
            **kwargs,
        )

    @property
    def options(self) -> SessionOptions:
        """A fresh copy of the store-wide session defaults"""
        return self._options.copy()

    async def get(self, request: Request, name: str) -> Session:
        """
        Return the session `name` for this request.

        Repeated calls during the same request return the same Session
        object, so every part of the application sees one set of values.
        """
        registry = getattr(request.state, REGISTRY_ATTRIBUTE, None)
        if registry is None:
            registry = {}
            setattr(request.state, REGISTRY_ATTRIBUTE, registry)

        session = registry.get(name)
        if session is None:
            session = await self.new(request.cookies, name)
            registry[name] = session
        return session

    async def new(self, cookies: Mapping[str, str], name: str) -> Session:
        """
        Create the session `name` from the request cookies.

        A missing cookie, or one that fails authentication, yields a blank
        new session. A valid cookie is loaded from the database; storage and
        codec errors propagate.
        """
        session = Session(self, name)

        token = cookies.get(name)
        if not token:
            return session

        try:
            session_id = self.authenticator.decode(name, token)
        except AuthenticationError as e:
            logger.warning("Session cookie %r failed authentication, starting a new session: %s", name, e)
            return session

        session.id = session_id
        if await self.hydrate(session):
            session.is_new = False
        return session

    async def hydrate(self, session: Session) -> bool:
        """
        Load the stored values of `session` by its id.

        Returns:
            True when a live row was found and decoded, False when there is
            no row or the row had expired (and was deleted)

        Raises:
            CodecError: If the stored data cannot be decoded
        """
        updated_at, data = await self.database.load(session.id)
        if updated_at is None:
            return False

        expires_at = updated_at + timedelta(seconds=self._options.max_age)
        if expires_at < self.clock():
            logger.info("Session expired, deleting stored row", extra={"expired_at": expires_at})
            await self.database.delete(session.id)
            return False

        try:
            session.values = self.codec.decode(data or b"")
        except CodecError as e:
            logger.error("Stored session data is corrupt: %s", e)
            raise
        return True

    async def save(self, session: Session, response: CookieWriter) -> None:
        """
        Persist `session` and set its cookie on `response`.

        A negative max_age deletes the stored row and clears the cookie.
        Otherwise the row is inserted (new session or no id yet) or
        updated, and the signed id is set as the cookie. Nothing is set on
        the response if encoding or storage fails.
        """
        if session.options.max_age < 0:
            try:
                await self.database.delete(session.id)
            finally:
                self._clear_cookie(response, session)
            return

        if not session.id:
            session.id = self.id_generator()
            session.is_new = True

        try:
            data = self.codec.encode(session.values)
        except CodecError as e:
            logger.error("Session values could not be encoded: %s", e)
            raise

        if session.is_new:
            await self.database.insert(session.id, data)
        else:
            await self.database.update(session.id, data)
        session.is_new = False

        token = self.authenticator.encode(session.name, session.id)
        self._set_cookie(response, session, token)

    def _set_cookie(self, response: CookieWriter, session: Session, token: str) -> None:
        options = session.options
        response.set_cookie(
            key=session.name,
            value=token,
            # zero means a browser-session cookie: no Max-Age attribute
            max_age=options.max_age or None,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )

    def _clear_cookie(self, response: CookieWriter, session: Session) -> None:
        options = session.options
        response.set_cookie(
            key=session.name,
            value="",
            max_age=0,
            expires=0,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )
