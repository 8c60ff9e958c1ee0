"""Database module for SQLite persistence.

Provides:
- The persistence gateway (single-owner store session)
- Schema provisioning and seeding per namespace
- Typed query results for students, categories, events and summaries
"""

from participation.db.database import Gateway, connect, open_gateway

__all__ = ["Gateway", "connect", "open_gateway"]
