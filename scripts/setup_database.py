#!/usr/bin/env python3
"""
Database setup script for the session store.

Creates the sessions table in the database named by SESSION_DATABASE_URL.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import inspect

from sessionstore.core.config import get_settings
from sessionstore.core.logging_config import init_logging
from sessionstore.db.database import SQLAlchemyDatabase
from sessionstore.db.session import create_session_engine


def main():
    """Create the sessions table based on configuration"""
    settings = get_settings()
    init_logging(settings)

    engine = create_session_engine(settings.database_url)
    print(f"Database Type: {engine.dialect.name}")

    try:
        SQLAlchemyDatabase(engine).create_schema()
    except Exception as e:
        print(f"Database setup failed: {e}")
        return False

    tables = inspect(engine).get_table_names()
    print(f"Tables: {', '.join(sorted(tables))}")
    return "sessions" in tables


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
