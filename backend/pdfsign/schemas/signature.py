"""
PDFSign Backend: Pydantic Request/Response Schemas
====================================================

What:  The API contract between the signing front-end and this backend.
How:   The front-end speaks camelCase (`pdfUrl`, `signedUrl`); models declare
       those spellings as aliases and accept snake_case names in Python code
       (`populate_by_name`). FastAPI serializes responses by alias.

Design Decision:
    SignPdfRequest is deliberately lax (coordinates and sizes typed as Any).
    The signing orchestrator owns validation so that every rule, including
    "x must be numeric", reports a uniform 400 with `success: false` instead
    of FastAPI's field-level 422.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, EmailStr, Field

_CAMEL = {"populate_by_name": True}


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class SignPdfRequest(BaseModel):
    """
    Body of POST /pdf/sign/{id}.

    Example:
        {
            "pdfUrl": "http://localhost:8000/api/files/pdfs/2024/05/01/a1b2.pdf",
            "documentId": "contract-42",
            "type": "text",
            "text": "Approved",
            "x": 100, "y": 50, "page": 1
        }
    """
    pdf_url: Optional[str] = Field(default=None, alias="pdfUrl")
    document_id: Optional[str] = Field(default=None, alias="documentId")
    mark_kind: Optional[str] = Field(
        default=None, alias="type", description="Mark kind: 'text' or 'image'"
    )
    text: Optional[str] = Field(default=None, description="Text to draw (text marks)")
    font_size: Any = Field(default=12, alias="fontSize")
    image_data: Optional[str] = Field(
        default=None,
        alias="imageData",
        description="PNG or JPEG data URL, e.g. data:image/png;base64,...",
    )
    x: Any = Field(default=None, description="Horizontal position in UI space")
    y: Any = Field(default=None, description="Vertical position in UI space (top-left origin)")
    page: Any = Field(default=1, description="1-indexed page number")
    status: Optional[str] = Field(default="signed", description="signed | pending | rejected")

    model_config = _CAMEL


class EmailRequest(BaseModel):
    """Body of POST /pdf/email."""
    file_url: str = Field(alias="fileUrl", min_length=1)
    to_email: EmailStr = Field(alias="toEmail")

    model_config = _CAMEL


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class SignResponse(BaseModel):
    """Returned by POST /pdf/sign/{id} after the artifact and record exist."""
    success: bool = True
    signed_url: str = Field(alias="signedUrl", description="Public URL of the signed PDF")
    public_id: str = Field(description="Object store identifier of the signed PDF")

    model_config = _CAMEL


class UploadResponse(BaseModel):
    """Returned by POST /pdf/upload."""
    success: bool = True
    url: str = Field(description="Public URL of the uploaded PDF")
    public_id: str = Field(description="Object store identifier")


class SignatureItem(BaseModel):
    """One SignatureRecord as exposed by GET /pdf/list."""
    id: uuid.UUID
    document_id: str = Field(alias="documentId")
    owner_id: str = Field(alias="ownerId")
    x: float
    y: float
    page: int
    status: str
    signed_at: datetime = Field(alias="signedAt")
    signed_url: str = Field(alias="signedUrl")
    public_id: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = _CAMEL


class SignatureListResponse(BaseModel):
    success: bool = True
    files: List[SignatureItem]
    total_count: int = Field(alias="totalCount")

    model_config = _CAMEL


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    deleted: int = Field(description="Number of signature records removed")


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """
    Standardized error body for every failure.

    Example:
        {
            "success": false,
            "error": "invalid_page",
            "message": "Invalid page number 3. The document has 1 page(s).",
            "details": {"field": "page", "page": 3, "page_count": 1},
            "request_id": "1f2e3d4c"
        }
    """
    success: bool = False
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected | disconnected")
    storage: str = Field(description="writable | unavailable")
    uptime_seconds: float
