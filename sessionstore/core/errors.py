"""
Exceptions raised by the session store.

Storage failures are not wrapped: the backend's own exceptions (SQLAlchemy
errors, cancellation, timeouts) reach the caller unchanged.
"""


class SessionError(Exception):
    """Base class for session store errors"""
    pass


class CodecError(SessionError):
    """Raised when session values cannot be encoded or stored bytes cannot be decoded"""
    pass


class AuthenticationError(SessionError):
    """Raised when a session cookie fails verification"""
    pass


class ConfigurationError(SessionError):
    """Raised when the store is built with unusable keys or options"""
    pass
