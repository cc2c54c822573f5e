"""Error Hierarchy — one exception class per way a BloodMatch operation can fail.

Invariants:
    - Every error carries a code, category, severity and HTTP status
    - The code is the contract with callers (BANNED, DONOR_UNAVAILABLE, ...);
      message text is informational only
    - details() holds only machine-readable facts about the failure
      (available units, banned_until, current status), never internals

Design Decisions:
    - Subclasses declare code/category/severity/http_status as class attributes;
      the base constructor only takes the message and optional context
    - ErrorContext as dataclass: observability data travels with the exception
      without coupling core/ to the logging setup
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    DATABASE = "database"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Who hit the error and when; filled in by the API layer where known."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: str | None = None
    actor_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class BloodMatchError(Exception):
    """Base class; subclasses override the ClassVars below."""

    code: ClassVar[str] = "INTERNAL_ERROR"
    category: ClassVar[ErrorCategory] = ErrorCategory.INTERNAL
    severity: ClassVar[ErrorSeverity] = ErrorSeverity.ERROR
    http_status: ClassVar[int] = 500

    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def details(self) -> dict[str, Any]:
        return {}

    def to_response(self) -> dict:
        body = {
            "code": self.code,
            "message": self.context.user_message or self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
            "context": {
                "request_id": self.context.request_id,
                "actor_id": self.context.actor_id,
            },
        }
        details = self.details()
        if details:
            body["details"] = details
        return {"error": body}


# ─── Domain Errors (4xx) ─────────────────────────────────────────

class FieldValidationError(BloodMatchError):
    """Missing or malformed input: non-positive units, unknown blood group."""
    code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    http_status = 400

    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(message, context)
        self.field = field

    def details(self) -> dict[str, Any]:
        return {"field": self.field}


class ResourceNotFoundError(BloodMatchError):
    """Referenced request, donor, stock entry or requester does not exist."""
    code = "RESOURCE_NOT_FOUND"
    category = ErrorCategory.RESOURCE_NOT_FOUND
    http_status = 404

    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(f"{resource_type} {resource_id} does not exist", context)
        self.resource_type = resource_type
        self.resource_id = resource_id

    def details(self) -> dict[str, Any]:
        return {"resource": self.resource_type}


class InvalidStateError(BloodMatchError):
    """Transition attempted from a status that does not permit it."""
    code = "INVALID_STATE"
    category = ErrorCategory.BUSINESS_RULE
    http_status = 409

    def __init__(
        self, message: str, current_status: str | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(message, context)
        self.current_status = current_status

    def details(self) -> dict[str, Any]:
        return {"current_status": self.current_status} if self.current_status else {}


class InsufficientInventoryError(BloodMatchError):
    """Debit exceeds the stock entry balance."""
    code = "INSUFFICIENT_INVENTORY"
    category = ErrorCategory.BUSINESS_RULE
    http_status = 409

    def __init__(self, requested: int, available: int, context: ErrorContext | None = None):
        super().__init__(
            f"Insufficient inventory: requested {requested}, available {available}",
            context,
        )
        self.requested = requested
        self.available = available

    def details(self) -> dict[str, Any]:
        return {"requested": self.requested, "available": self.available}


class DonorUnavailableError(BloodMatchError):
    """Donor is in cooldown or already holds an outstanding request."""
    code = "DONOR_UNAVAILABLE"
    category = ErrorCategory.BUSINESS_RULE
    http_status = 409

    def __init__(self, donor_id: str, reason: str, context: ErrorContext | None = None):
        super().__init__(f"Donor {donor_id} unavailable: {reason}", context)
        self.donor_id = donor_id
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {"reason": self.reason}


class ForbiddenError(BloodMatchError):
    """Actor lacks the role, or does not own the target record."""
    code = "FORBIDDEN"
    category = ErrorCategory.AUTHORIZATION
    severity = ErrorSeverity.WARNING
    http_status = 403


class RequesterBannedError(BloodMatchError):
    """Active suspension blocks the action."""
    code = "BANNED"
    category = ErrorCategory.AUTHORIZATION
    severity = ErrorSeverity.WARNING
    http_status = 403

    def __init__(self, banned_until: datetime, context: ErrorContext | None = None):
        super().__init__(f"Requester is banned until {banned_until.isoformat()}", context)
        self.banned_until = banned_until

    def details(self) -> dict[str, Any]:
        return {"banned_until": self.banned_until.isoformat()}


class ConcurrencyError(BloodMatchError):
    """A guarded UPDATE matched no row: another writer got there first."""
    code = "CONCURRENCY_CONFLICT"
    category = ErrorCategory.CONFLICT
    http_status = 409


# ─── Infrastructure Errors (5xx) ─────────────────────────────────

class DatabaseError(BloodMatchError):
    code = "DATABASE_ERROR"
    category = ErrorCategory.DATABASE
    severity = ErrorSeverity.CRITICAL
    http_status = 503

    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(f"Database {operation} failed: {message}", context)
        self.operation = operation
