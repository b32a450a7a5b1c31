"""Database module for SQLite persistence.

Provides:
- Database connection management
- Schema initialization
- Repositories for content, quiz attempts, and completion facts
"""

from portal.db.database import get_db, init_db

__all__ = ["get_db", "init_db"]
