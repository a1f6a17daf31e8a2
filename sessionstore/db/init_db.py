"""Create the session store schema"""

import logging
from typing import Optional, Sequence

from sqlalchemy import Table
from sqlalchemy.engine import Engine

from sessionstore.db.base import Base

# Import all models explicitly to register them with SQLAlchemy
from sessionstore.db.models import session_store as _model_session_store  # noqa: F401

logger = logging.getLogger("sessionstore.database")


def init_database(engine: Engine, tables: Optional[Sequence[Table]] = None) -> None:
    """Create all tables (or only `tables`) that do not exist yet"""
    try:
        Base.metadata.create_all(bind=engine, tables=tables, checkfirst=True)

        table_names = [table.name for table in (tables or Base.metadata.sorted_tables)]
        logger.info("Created database tables", extra={
            "table_count": len(table_names),
            "tables": table_names
        })

    except Exception as e:
        logger.error(f"Error initializing database: {e}", extra={
            "error_type": type(e).__name__,
            "database_url": "[REDACTED]"  # Don't log connection strings
        })
        raise
