"""
Storage Exceptions.

============================================================
PURPOSE
============================================================
Errors raised by both fleet store backends. Driver errors
(SQLAlchemy, aiosqlite, asyncpg) are wrapped here and never
leave the storage package unwrapped.

============================================================
HIERARCHY
============================================================
StorageError (core.exceptions)
└── StoreError
    ├── RecordNotFoundError      update_*() target is gone
    ├── DuplicateRecordError     unique key collision
    ├── ConstraintViolationError other integrity failures
    ├── StoreUnavailableError    connection / pool failures
    ├── QueryError               statement or commit failed
    └── ImmutableFieldError      update names a read-only field

DuplicateRecordError on insert_alarm() means another writer
already holds the active alarm key. The alarm manager turns it
into a raise-or-get result instead of an error.

============================================================
"""

from typing import Any, Iterable

from core.exceptions import ErrorClassification, Severity, StorageError


class StoreError(StorageError):
    """Base for fleet store failures."""

    def __init__(self, message: str, store: str, operation: str, **kwargs):
        context = kwargs.pop("context", {})
        context.update({"store": store, "operation": operation})
        super().__init__(f"[{store}] {operation}: {message}", context=context, **kwargs)
        self.store = store
        self.operation = operation


class RecordNotFoundError(StoreError):

    default_severity = Severity.LOW
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, store: str, record_id: Any, id_field: str = "id", **kwargs):
        super().__init__(
            f"no record with {id_field}={record_id}",
            store=store,
            operation="update",
            context={id_field: str(record_id)},
            **kwargs,
        )
        self.record_id = record_id
        self.id_field = id_field


class DuplicateRecordError(StoreError):
    """An insert collided with a unique key."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, store: str, constraint_field: str, value: Any, **kwargs):
        super().__init__(
            f"{constraint_field}={value} already exists",
            store=store,
            operation="insert",
            context={"field": constraint_field, "value": str(value)},
            **kwargs,
        )
        self.constraint_field = constraint_field
        self.value = value


class ConstraintViolationError(StoreError):

    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, store: str, operation: str, detail: str, **kwargs):
        super().__init__(f"constraint violated: {detail}", store=store, operation=operation, **kwargs)


class StoreUnavailableError(StoreError):
    """Database unreachable or pool exhausted."""

    default_severity = Severity.CRITICAL

    def __init__(self, store: str, operation: str, detail: str, **kwargs):
        super().__init__(f"database unavailable: {detail}", store=store, operation=operation, **kwargs)


class QueryError(StoreError):

    def __init__(self, store: str, operation: str, detail: str, **kwargs):
        super().__init__(f"statement failed: {detail}", store=store, operation=operation, **kwargs)


class ImmutableFieldError(StoreError):
    """A machine update named fields that cannot be changed."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, store: str, operation: str, fields: Iterable[str], **kwargs):
        names = sorted(fields)
        super().__init__(
            f"fields not updatable: {', '.join(names)}",
            store=store,
            operation=operation,
            context={"fields": names},
            **kwargs,
        )
        self.fields = names
