"""
Storage Package.

This package manages all data persistence for the desk.

Modules:
- database: Engine, sessions and transaction scopes
- models/: ORM models
- repositories/: Data access layer
"""

from storage.database import Database, DatabaseConfig

__all__ = ["Database", "DatabaseConfig"]
