"""
Error types for FastData SDK.

This module defines all exception types raised by the SDK:
- FastDataError: Base exception
- ValidationError: Builder/encoder precondition failures
- PathError: Invalid upload path
- SizeError: Upload exceeds the protocol ceiling
- TransportError: Non-2xx response, timeout or connection failure
- UploadChunkError: A single upload unit failed to submit

Invariants:
    - All errors inherit from FastDataError
    - Validation errors are deterministic and never retried
    - Transport errors carry the HTTP status (None when no response arrived)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class FastDataError(Exception):
    """Base exception for all FastData SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "FASTDATA_ERROR"
        self.details = details or {}


class ValidationError(FastDataError):
    """Caller-supplied data violates a builder or encoder precondition.

    Raised when:
    - A required string argument is empty
    - An account id is malformed
    - A commit would exceed the per-transaction key limit
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class PathError(ValidationError):
    """Upload path is not acceptable.

    Raised when:
    - The path contains a '..' segment
    - The path is longer than the protocol allows
    - The path is empty
    """

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message, field_name="relative_path", code="PATH_ERROR")
        self.path = path
        self.details["path"] = path


class SizeError(ValidationError):
    """File exceeds the FastFS size ceiling."""

    def __init__(self, message: str, size: int, limit: int) -> None:
        super().__init__(message, field_name="content", code="SIZE_ERROR")
        self.size = size
        self.limit = limit
        self.details.update({"size": size, "limit": limit})


class TransportError(FastDataError):
    """HTTP request to the FastData API failed.

    Raised when:
    - The server answers with a non-2xx status
    - The request times out
    - The server is unreachable

    Attributes:
        status: HTTP status code, None if no response was received
        body: Response body text (empty if unavailable)
        url: Requested URL
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: str = "",
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSPORT_ERROR",
            details={"status": status, "body": body, "url": url},
        )
        self.status = status
        self.body = body
        self.url = url


class UploadChunkError(FastDataError):
    """Submitting one upload unit failed.

    The file's remaining units are abandoned; sibling files are unaffected.

    Attributes:
        path: Relative path of the file
        part_index: Zero-based index of the failed unit
        offset: Byte offset of the failed unit
    """

    def __init__(
        self,
        path: str,
        part_index: int,
        offset: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        msg = f"Upload of '{path}' failed at part {part_index} (offset {offset})"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(
            msg,
            code="UPLOAD_CHUNK_ERROR",
            details={"path": path, "part_index": part_index, "offset": offset},
        )
        self.path = path
        self.part_index = part_index
        self.offset = offset
        self.cause = cause
