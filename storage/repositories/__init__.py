"""
Storage Repositories Package.

============================================================
PURPOSE
============================================================
SQL data access for the fleet store. Each repository wraps
one aggregate and maps SQLAlchemy errors onto the storage
exceptions.

============================================================
REPOSITORIES
============================================================
- fleet: MachineRepository, HeartbeatRepository,
  TelemetryRepository, CleaningLogRepository
- alarms: AlarmRepository, DeadLetterRepository
- commands: CommandRepository

Import repositories from their modules; this package only
re-exports the exceptions, which the in-memory store shares.

============================================================
"""

from storage.repositories.exceptions import (
    StoreError,
    RecordNotFoundError,
    DuplicateRecordError,
    ConstraintViolationError,
    StoreUnavailableError,
    QueryError,
    ImmutableFieldError,
)


__all__ = [
    "StoreError",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "ConstraintViolationError",
    "StoreUnavailableError",
    "QueryError",
    "ImmutableFieldError",
]
