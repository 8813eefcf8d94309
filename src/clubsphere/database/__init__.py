"""
# Database Package

The `clubsphere.database` package provides the persistence layer, built on
**Motor** (async MongoDB driver).

- **`manager`**: the `DatabaseManager` singleton handling the connection pool,
  index creation and timeout-bounded operations.

The `db_manager` instance is a module-level singleton so a single connection
pool is shared by every request handler. It is connected in the FastAPI
lifespan (`clubsphere.main`) and by the reconciliation CLI.

Attributes:
    db_manager (DatabaseManager): The global singleton instance for database access.
"""

from clubsphere.database.manager import DatabaseManager, db_manager

__all__ = ["DatabaseManager", "db_manager"]
