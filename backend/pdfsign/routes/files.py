"""
Serves stored PDFs (uploads and signed artifacts) by object id.

Public on purpose: the URLs returned by /pdf/upload and /pdf/sign are handed
to browsers and to mail recipients, and object ids are unguessable UUIDs.
Path traversal is rejected by LocalObjectStore.resolve().
"""

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse

from pdfsign.exceptions import NotFoundError
from pdfsign.schemas.signature import ErrorResponse
from pdfsign.services.object_store import LocalObjectStore

router = APIRouter(prefix="/api", tags=["Files"])


@router.get(
    "/files/{file_path:path}",
    responses={
        200: {"description": "PDF document", "content": {"application/pdf": {}}},
        400: {"description": "Invalid file path", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="Download a stored PDF",
)
async def serve_file(file_path: str, request: Request) -> FileResponse:
    store = request.app.state.object_store
    if not isinstance(store, LocalObjectStore):
        raise NotFoundError(resource="file", resource_id=file_path)

    path = store.open_path(file_path)
    return FileResponse(
        path=str(path),
        media_type="application/pdf",
        # Stored objects are never overwritten
        headers={"Cache-Control": "public, max-age=86400, immutable"},
    )
