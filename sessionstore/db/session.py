from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # The engine is shared by worker threads serving concurrent requests
        return {"check_same_thread": False}
    # PostgreSQL and other databases don't need special args
    return {}


def create_session_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create the engine backing the session table"""
    return create_engine(
        database_url,
        connect_args=get_connect_args(database_url),
        **kwargs,
    )
