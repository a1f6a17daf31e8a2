"""Web framework integration"""

from sessionstore.web.middleware import SessionMiddleware, get_session

__all__ = ["SessionMiddleware", "get_session"]
