"""
Portal Exception Hierarchy

Every failure a form, upload or data-view action can hit is raised as a
PortalError subclass carrying a user-facing message, a machine code and the
HTTP status the API answers with.
"""
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError


class PortalError(Exception):
    """Base exception for all portal errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class AuthenticationError(PortalError):
    """Missing, invalid or expired session."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="AUTHENTICATION_ERROR", details=details)


class FormValidationError(PortalError):
    """A required field is missing or malformed."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        extra = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={**extra, **(details or {})}
        )
        self.field = field

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> "FormValidationError":
        """Report the first failing field, the way the intake forms show a single message."""
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        elif field:
            message = f"{field}: {message}"
        return cls(message=message, field=field or None)


class NotFoundError(PortalError):
    """Requested participant (or record) does not exist for this account."""

    status_code = 404

    def __init__(self, message: str, resource: str = "unknown", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource": resource, **(details or {})}
        )
        self.resource = resource


class PersistenceError(PortalError):
    """Write to the data store failed."""

    def __init__(self, message: str, table: str = "unknown", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            details={"table": table, **(details or {})}
        )
        self.table = table


class StorageError(PortalError):
    """Write to blob storage failed."""

    def __init__(self, message: str, bucket: str = "unknown", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="STORAGE_ERROR",
            details={"bucket": bucket, **(details or {})}
        )
        self.bucket = bucket


class FileSelectionError(PortalError):
    """Upload submitted without a file."""

    status_code = 400

    def __init__(self, message: str = "Please select a file to upload"):
        super().__init__(message=message, code="FILE_SELECTION_ERROR")


class DataLoadError(PortalError):
    """One of the data-view reads failed; nothing is populated."""

    def __init__(self, message: str = "Failed to fetch data", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="DATA_LOAD_ERROR", details=details)
