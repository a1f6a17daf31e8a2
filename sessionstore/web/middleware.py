"""
Starlette / FastAPI integration for the SQL session store.

The middleware makes the store available to the request. A session is
opened the first time the endpoint asks for it, and every session opened
during the request is saved once the endpoint has produced its response.
Requests that never touch a session leave the database alone.
"""

import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from sessionstore.store import REGISTRY_ATTRIBUTE, Session, SQLStore

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Attach a server-side session store to every request.

    Endpoints open the session through the `get_session` dependency.
    Opened sessions are saved after the endpoint returns; a storage error
    while saving replaces the response with the error, it is never ignored.
    """

    def __init__(self, app: ASGIApp, store: SQLStore, cookie_name: str = "session"):
        super().__init__(app)
        self.store = store
        self.cookie_name = cookie_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.session_store = self.store
        request.state.session_cookie_name = self.cookie_name

        response = await call_next(request)

        registry = getattr(request.state, REGISTRY_ATTRIBUTE, {})
        for session in registry.values():
            try:
                await session.save(response)
            except Exception as e:
                logger.error(
                    "Failed to save session %r",
                    session.name,
                    extra={"error_type": type(e).__name__},
                )
                raise
        return response


async def get_session(request: Request) -> Session:
    """FastAPI dependency opening the request's session on first use"""
    store: SQLStore = request.state.session_store
    return await store.get(request, request.state.session_cookie_name)
