"""Database module.

This module provides database session management and engine configuration.
"""

from flowdrop.db.session import async_session, engine, get_db, init_models

__all__ = [
    "engine",
    "async_session",
    "get_db",
    "init_models",
]
