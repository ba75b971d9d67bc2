"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the service-level exception taxonomy.

- NotFound: referenced machine / command / alarm does not exist
- InvalidInput: a required field is missing or malformed
- TransientIO: storage, mail transport or gateway call failed

============================================================
EXCEPTION HIERARCHY
============================================================
FleetException (base)
├── ConfigurationError
├── NotFoundError
│   ├── MachineNotFoundError
│   ├── CommandNotFoundError
│   └── AlarmNotFoundError
├── InvalidInputError
└── TransientIOError
    ├── StorageError
    ├── NotificationDeliveryError
    └── GatewayError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """How loudly an error is logged."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Whether the caller should retry."""

    RECOVERABLE = "recoverable"  # fix the request and resend
    TRANSIENT = "transient"  # retry may succeed
    NON_RECOVERABLE = "non_recoverable"


# ============================================================
# BASE EXCEPTION
# ============================================================

class FleetException(Exception):
    """
    Base exception for all fleet service errors.

    All exceptions carry:
    - severity: for logging
    - context: for debugging
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_transient(self) -> bool:
        """Check if a retry may succeed."""
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/HTTP error bodies."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(FleetException):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


# ============================================================
# NOT FOUND
# ============================================================

class NotFoundError(FleetException):
    """A referenced entity does not exist."""

    default_severity = Severity.LOW

    def __init__(self, entity: str, entity_id: Any, **kwargs):
        context = kwargs.pop("context", {})
        context[f"{entity}_id"] = str(entity_id)
        super().__init__(f"{entity.capitalize()} not found: {entity_id}", context=context, **kwargs)
        self.entity = entity
        self.entity_id = entity_id


class MachineNotFoundError(NotFoundError):
    def __init__(self, machine_id: Any, **kwargs):
        super().__init__("machine", machine_id, **kwargs)


class CommandNotFoundError(NotFoundError):
    def __init__(self, command_id: Any, **kwargs):
        super().__init__("command", command_id, **kwargs)


class AlarmNotFoundError(NotFoundError):
    def __init__(self, alarm_id: Any, **kwargs):
        super().__init__("alarm", alarm_id, **kwargs)


# ============================================================
# INVALID INPUT
# ============================================================

class InvalidInputError(FleetException):
    """A required field is missing or malformed. No side effects were performed."""

    default_severity = Severity.LOW

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        super().__init__(message, context=context, **kwargs)
        self.field = field


# ============================================================
# TRANSIENT I/O
# ============================================================

class TransientIOError(FleetException):
    """An I/O dependency failed; retry may succeed."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT


class StorageError(TransientIOError):
    """Backing store read or write failed."""


class NotificationDeliveryError(TransientIOError):
    """Mail transport rejected or failed to deliver a message."""

    def __init__(self, message: str, provider: str, **kwargs):
        context = kwargs.pop("context", {})
        context["provider"] = provider
        super().__init__(message, context=context, **kwargs)
        self.provider = provider


class GatewayError(TransientIOError):
    """Device gateway call failed."""

    default_severity = Severity.MEDIUM


__all__ = [
    "Severity",
    "ErrorClassification",
    "FleetException",
    "ConfigurationError",
    "NotFoundError",
    "MachineNotFoundError",
    "CommandNotFoundError",
    "AlarmNotFoundError",
    "InvalidInputError",
    "TransientIOError",
    "StorageError",
    "NotificationDeliveryError",
    "GatewayError",
]
