"""
Structured errors for drive operations.

Every error carries a stable machine-readable ``code``, a human message, the
HTTP status it maps to, and optional details. The API layer renders them with
a single exception handler (see ``study_drive.main``).
"""
from datetime import datetime
from typing import Any, Optional


class DriveError(Exception):
    """Base class for all drive errors"""

    code: str = "OPERATION_FAILED"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert error to API response body"""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = {
                key: value.isoformat() if isinstance(value, datetime) else value
                for key, value in self.details.items()
            }
        return body


class AuthenticationRequiredError(DriveError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401

    def __init__(self, reason: str = "Authentication required"):
        super().__init__(reason)


class AccessDeniedError(DriveError):
    code = "ACCESS_DENIED"
    status_code = 403

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"You do not own this {resource}",
            {"resource": resource, "id": resource_id}
        )


class NotFoundError(DriveError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource.capitalize()} not found"
        if resource_id:
            message = f"{message}: {resource_id}"
        super().__init__(message, {"resource": resource, "id": resource_id})


class InvalidNameError(DriveError):
    code = "INVALID_NAME"
    status_code = 400

    def __init__(self, name: str, reason: str):
        super().__init__(f'Invalid name "{name}": {reason}', {"name": name, "reason": reason})


class DuplicatePathError(DriveError):
    code = "DUPLICATE_PATH"
    status_code = 409

    def __init__(self, path: str):
        super().__init__(f"A folder already exists at {path}", {"path": path})


class InvalidMoveError(DriveError):
    code = "INVALID_MOVE"
    status_code = 400

    def __init__(self, folder_id: str, target_id: Optional[str]):
        super().__init__(
            "A folder cannot be moved into itself or one of its descendants",
            {"folder_id": folder_id, "target_id": target_id}
        )


class PathConflictError(DriveError):
    code = "PATH_CONFLICT"
    status_code = 409

    def __init__(self, path: str):
        super().__init__(
            f"Cannot restore: a live folder already occupies {path}. Rename it first.",
            {"path": path}
        )


class QuotaExceededError(DriveError):
    code = "QUOTA_EXCEEDED"
    status_code = 403

    def __init__(
        self,
        kind: str,
        used: int,
        limit: int,
        requested: int,
        reset_at: Optional[datetime] = None
    ):
        details: dict[str, Any] = {
            "kind": kind,
            "used": used,
            "limit": limit,
            "requested": requested,
        }
        if reset_at is not None:
            details["reset_at"] = reset_at
        super().__init__(
            f"{kind.capitalize()} limit exceeded. Using {used} of {limit} bytes, requested {requested}",
            details,
            status_code=429 if kind == "bandwidth" else 403
        )


class RateLimitedError(DriveError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, operation: str, reset_at: datetime):
        super().__init__(
            f"Too many {operation} requests. Please try again later.",
            {"operation": operation, "reset_at": reset_at}
        )
        self.reset_at = reset_at


class IOFailureError(DriveError):
    code = "IO_FAILURE"
    status_code = 500

    def __init__(self, operation: str, key: str, reason: str):
        super().__init__(
            f"{operation} failed for {key}: {reason}",
            {"operation": operation, "key": key, "reason": reason}
        )


class FileTooLargeError(DriveError):
    code = "FILE_TOO_LARGE"
    status_code = 413

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"File size {size} bytes exceeds limit of {limit} bytes",
            {"size": size, "limit": limit}
        )


class DuplicateContentError(DriveError):
    code = "DUPLICATE_CONTENT"
    status_code = 409

    def __init__(self, content_hash: str, existing_file_id: str):
        super().__init__(
            "A file with this content already exists",
            {"hash": content_hash, "existing_file_id": existing_file_id}
        )


class CopyNotAllowedError(DriveError):
    code = "COPY_NOT_ALLOWED"
    status_code = 403

    def __init__(self, owner_id: str):
        super().__init__(
            "The owner of this drive does not allow copying",
            {"owner_id": owner_id}
        )


class DuplicateRequestError(DriveError):
    code = "DUPLICATE_REQUEST"
    status_code = 409

    def __init__(self, request_id: str):
        super().__init__(
            "A pending copy request already exists for this item",
            {"request_id": request_id}
        )


class InvalidRequestStateError(DriveError):
    code = "INVALID_REQUEST_STATE"
    status_code = 400

    def __init__(self, request_id: str, status: str, reason: str):
        super().__init__(reason, {"request_id": request_id, "status": status})
