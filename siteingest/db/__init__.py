"""Database layer package.

Public re-exports so callers can write::

    from siteingest.db import open_store
"""

from siteingest.db.connection import get_connection, open_store
from siteingest.db.migrations import init_db, reset_db

__all__ = ["get_connection", "open_store", "init_db", "reset_db"]
