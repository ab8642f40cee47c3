"""
PDFSign Backend: PDF Route Handlers
=====================================

What:  The signing API used by the document front-end.
Who:   Every route requires `Authorization: Bearer <token>`; the caller id
       resolved by require_caller becomes the owner of new records and the
       subject of ownership checks.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from pdfsign.database import get_db_session
from pdfsign.schemas.signature import (
    DeleteResponse,
    EmailRequest,
    ErrorResponse,
    MessageResponse,
    SignatureListResponse,
    SignPdfRequest,
    SignResponse,
    UploadResponse,
)
from pdfsign.services.document_service import DocumentService
from pdfsign.services.identity import require_caller
from pdfsign.services.signing_service import SigningService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pdf", tags=["PDF"])


def get_signing_service(request: Request) -> SigningService:
    return request.app.state.signing_service


def get_document_service(request: Request) -> DocumentService:
    return request.app.state.document_service


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"description": "Not a PDF, empty, or too large", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    summary="Upload a source PDF",
)
async def upload_pdf(
    file: UploadFile = File(..., description="PDF document"),
    caller_id: str = Depends(require_caller),
    documents: DocumentService = Depends(get_document_service),
) -> UploadResponse:
    try:
        content = await file.read()
        logger.info(
            "Upload from %s: filename=%s size=%d bytes",
            caller_id, file.filename or "unknown", len(content),
        )
        return await documents.upload_pdf(
            filename=file.filename or "",
            content=content,
            content_length=file.size,
        )
    finally:
        await file.close()


@router.post(
    "/sign/{id}",
    response_model=SignResponse,
    responses={
        400: {"description": "Invalid request, page or image format", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        500: {"description": "Render or storage failure", "model": ErrorResponse},
        502: {"description": "Source PDF could not be fetched", "model": ErrorResponse},
    },
    summary="Draw a text or image mark on a PDF page",
    description=(
        "Fetches the PDF at pdfUrl, draws the mark at (x, y) in UI coordinates "
        "(top-left origin) on the requested page together with a status footer, "
        "stores the result and records the signature."
    ),
)
async def sign_pdf(
    id: str,
    body: SignPdfRequest,
    caller_id: str = Depends(require_caller),
    signer: SigningService = Depends(get_signing_service),
    db: AsyncSession = Depends(get_db_session),
) -> SignResponse:
    if body.document_id and body.document_id != id:
        logger.debug("Sign path id %s differs from body documentId %s", id, body.document_id)
    return await signer.sign_document(db=db, request=body, caller_id=caller_id)


@router.get(
    "/list",
    response_model=SignatureListResponse,
    summary="List the caller's signed documents",
)
async def list_signed_pdfs(
    response: Response,
    status: Optional[str] = Query(default=None, description="signed | pending | rejected"),
    limit: int = Query(default=50, description="Maximum items returned (1-200)"),
    caller_id: str = Depends(require_caller),
    documents: DocumentService = Depends(get_document_service),
    db: AsyncSession = Depends(get_db_session),
) -> SignatureListResponse:
    result = await documents.list_signed(db, caller_id, status=status, limit=limit)
    response.headers["X-Total-Count"] = str(result.total_count)
    response.headers["Cache-Control"] = "private, no-cache"
    return result


@router.delete(
    "/delete/{documentId}",
    response_model=DeleteResponse,
    responses={
        403: {"description": "Document belongs to another user", "model": ErrorResponse},
        404: {"description": "No records for this document", "model": ErrorResponse},
    },
    summary="Delete a document's signatures and signed files",
)
async def delete_pdf(
    documentId: str,
    caller_id: str = Depends(require_caller),
    documents: DocumentService = Depends(get_document_service),
    db: AsyncSession = Depends(get_db_session),
) -> DeleteResponse:
    return await documents.delete_document(db, documentId, caller_id)


@router.post(
    "/email",
    response_model=MessageResponse,
    responses={
        400: {"description": "Invalid address or URL", "model": ErrorResponse},
        502: {"description": "Mail relay failure", "model": ErrorResponse},
    },
    summary="Email a link to a signed PDF",
)
async def email_pdf(
    body: EmailRequest,
    caller_id: str = Depends(require_caller),
    documents: DocumentService = Depends(get_document_service),
) -> MessageResponse:
    logger.info("Caller %s emailing %s", caller_id, body.file_url)
    await documents.email_document(body.file_url, body.to_email)
    return MessageResponse(message="Email sent successfully")
