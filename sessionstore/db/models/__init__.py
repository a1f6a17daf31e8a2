"""Database models"""

from sessionstore.db.models.session_store import SessionRow

__all__ = [
    "SessionRow",
]
