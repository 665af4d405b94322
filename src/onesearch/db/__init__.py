"""
Database Package

Provides SQLAlchemy async session management, the schema, and the
SQL-backed config store.
"""

from .session import create_engine_and_sessionmaker, init_schema
from .models import Base, ConfigEntry
from .config_store import SqlConfigStore

__all__ = [
    "create_engine_and_sessionmaker",
    "init_schema",
    "Base",
    "ConfigEntry",
    "SqlConfigStore",
]
