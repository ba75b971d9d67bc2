"""
Storage Package.

This package manages all fleet data persistence.

Modules:
- store: FleetStore interface and the in-memory backend
- sql_store: SQLAlchemy async backend
- database: Engine and session management
- models/: ORM models
- repositories/: SQL data access layer
"""

import logging

from core.config import DatabaseConfig
from core.exceptions import ConfigurationError
from storage.store import FleetStore, InMemoryFleetStore


logger = logging.getLogger(__name__)


async def create_store(config: DatabaseConfig) -> FleetStore:
    """
    Build the configured backend, creating the SQL schema if needed.

    Raises:
        ConfigurationError: Unknown backend name
    """
    if config.backend == "memory":
        logger.info("Using in-memory fleet store")
        return InMemoryFleetStore()

    if config.backend == "sql":
        from storage.database import Database
        from storage.sql_store import SqlFleetStore

        database = Database(config)
        await database.connect()
        await database.create_all()
        return SqlFleetStore(database)

    raise ConfigurationError(
        f"Unknown storage backend: {config.backend}",
        config_key="STORAGE_BACKEND",
        actual_value=config.backend,
    )


__all__ = [
    "FleetStore",
    "InMemoryFleetStore",
    "create_store",
]
