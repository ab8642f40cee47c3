"""
PDFSign Backend: Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for every failure the signing
       pipeline and its collaborators can report.
How:   Each exception carries a user-safe message, an optional context dict
       (logged, never returned for server-side failures), and the HTTP status
       and machine-readable error code the global handlers respond with.
Who:   Raised by services and collaborators; caught by handlers in main.py.

Exception Hierarchy:
    PdfSignError (base)
    ├── ValidationError          → 400 (client can fix)
    │   ├── UnsupportedFormatError → 400 (image payload not PNG/JPEG)
    │   └── InvalidPageError       → 400 (page outside [1, page_count])
    ├── UnauthorizedError        → 401
    ├── ForbiddenError           → 403 (not the owner)
    ├── NotFoundError            → 404
    ├── RateLimitExceededError   → 429
    ├── RenderFailureError       → 500 (mark could not be drawn)
    ├── StoreError               → 500 (object store write failed)
    ├── DatabaseError            → 500
    ├── SourceFetchError         → 502 (upstream refused the source PDF)
    └── MailError                → 502 (SMTP relay failed)
"""

from typing import Any, Dict, Optional


class PdfSignError(Exception):
    """
    Base exception for all PDFSign application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; only echoed for 4xx errors)
    """

    status_code: int = 500
    error_code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PdfSignError):
    """
    Raised when client input fails validation.

    When:    Missing required fields, non-numeric coordinates, empty text,
             bad status value, wrong upload type or size.
    HTTP:    400 Bad Request
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnsupportedFormatError(ValidationError):
    """
    Raised when an image signature is neither PNG nor JPEG.

    Detected from the data-URL media type before any network or storage work.
    """

    error_code = "unsupported_format"

    def __init__(self, media_type: Optional[str] = None):
        super().__init__(
            message="Unsupported image format. Use a PNG or JPEG data URL.",
            field="imageData",
            context={"media_type": media_type, "allowed": ["image/png", "image/jpeg"]},
        )
        self.media_type = media_type


class InvalidPageError(ValidationError):
    """Raised when the requested page does not exist in the loaded document."""

    error_code = "invalid_page"

    def __init__(self, page_number: Any, page_count: int):
        super().__init__(
            message=f"Invalid page number {page_number}. The document has {page_count} page(s).",
            field="page",
            context={"page": page_number, "page_count": page_count},
        )
        self.page_number = page_number
        self.page_count = page_count


class UnauthorizedError(PdfSignError):
    """
    Raised when a request carries no valid bearer token.

    HTTP:    401 Unauthorized (with WWW-Authenticate: Bearer)
    """

    status_code = 401
    error_code = "unauthorized"

    def __init__(
        self,
        message: str = "Please login to access this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(PdfSignError):
    """Raised when the caller is authenticated but does not own the target."""

    status_code = 403
    error_code = "forbidden"

    def __init__(
        self,
        message: str = "You are not allowed to modify this document",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(PdfSignError):
    """
    Raised when a requested resource does not exist.

    When:    DELETE for a documentId with no signature records, GET of a stored
             file that is gone.
    HTTP:    404 Not Found
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(PdfSignError):
    """Raised when a client exceeds the per-IP request rate limit (429)."""

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class RenderFailureError(PdfSignError):
    """
    Raised when the signature mark cannot be drawn onto the page.

    What:    Corrupt image bytes, undecodable base64, or a reportlab/pypdf
             failure while building or merging the overlay.
    HTTP:    500 Internal Server Error
    Guarantee: Raised before anything is stored; no partial writes exist.
    """

    status_code = 500
    error_code = "render_failure"

    def __init__(
        self,
        message: str = "The signature could not be applied to the document.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StoreError(PdfSignError):
    """
    Raised when the object store cannot persist bytes.

    HTTP:    500 Internal Server Error. The message is generic; paths and OS
             errors stay in the server log.
    """

    status_code = 500
    error_code = "store_error"

    def __init__(
        self,
        message: str = "Failed to store the document. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(PdfSignError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic. SQL, constraint
        names and driver errors are logged server-side only.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class SourceFetchError(PdfSignError):
    """
    Raised when the source PDF cannot be downloaded.

    What:    The upstream answered with a non-success status, or every retry
             hit a transport error (status is None in that case).
    HTTP:    502 Bad Gateway
    """

    status_code = 502
    error_code = "source_fetch_error"

    def __init__(
        self,
        status: Optional[int] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = (
                f"Failed to fetch PDF: {status}" if status is not None
                else "Failed to fetch PDF: the source could not be reached"
            )
        ctx = context or {}
        ctx["upstream_status"] = status
        super().__init__(message=message, context=ctx)
        self.status = status


class MailError(PdfSignError):
    """
    Raised when the SMTP relay rejects or cannot deliver a message.

    Best-effort: never rolls back any signing or storage operation.
    """

    status_code = 502
    error_code = "mail_error"

    def __init__(
        self,
        message: str = "The email could not be sent. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
