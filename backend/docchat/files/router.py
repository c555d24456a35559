"""FastAPI router for document upload and listing.

Endpoints:
    POST /api/upload: multipart/form-data upload, single ``file`` field
    GET  /api/documents: uploaded documents, newest first

The upload handler reads ``request.stream()`` directly instead of declaring
an ``UploadFile`` parameter, so the framework never spools the body; the
size cap is enforced while bytes arrive.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from docchat.auth import get_current_user_id, read_user_id
from docchat.config import get_config
from docchat.content_store import get_content_store
from docchat.errors import DocChatError, Unauthorized
from docchat.storage import CatalogService

from .schemas import DocumentSummary, UploadErrorResponse, UploadResponse
from .service import UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])


@router.post("/upload", response_model=UploadResponse)
async def upload_file(request: Request):
    """Upload one document.

    Returns:
        UploadResponse on success.

    Error responses (``UploadErrorResponse`` body):
        400: No file field / malformed multipart body
        401: No caller identity
        413: File exceeds the configured size limit
        500: Disk, content store, database or unexpected failure
    """
    user_id = read_user_id(request)
    if user_id is None:
        error = Unauthorized()
        return JSONResponse(
            UploadErrorResponse(message=error.message, error=error.message).model_dump(),
            status_code=error.status_code,
        )

    config = get_config()
    service = UploadService(
        catalog=CatalogService.get_instance(config.database.path),
        content_store=get_content_store(),
        settings=config.uploads,
    )
    logger.info("[upload] request received from user=%s", user_id)

    try:
        document = await service.ingest(request.stream(), request.headers.get("content-type"))
    except DocChatError as e:
        logger.warning("[upload] failed with %d: %s", e.status_code, e.message)
        return JSONResponse(
            UploadErrorResponse(error=e.message).model_dump(),
            status_code=e.status_code,
        )
    except ClientDisconnect:
        # Nobody is left to read the response; the partial file is already gone
        logger.warning("[upload] client disconnected before the body was complete")
        return JSONResponse(
            UploadErrorResponse(error="Client disconnected").model_dump(),
            status_code=400,
        )
    except Exception as e:
        logger.exception("[upload] unexpected failure: %s", e)
        return JSONResponse(
            UploadErrorResponse(error=str(e) or type(e).__name__).model_dump(),
            status_code=500,
        )

    logger.info("[upload] document %s stored for user=%s", document.id, user_id)
    return UploadResponse()


@router.get("/documents", response_model=List[DocumentSummary])
async def list_documents(user_id: str = Depends(get_current_user_id)) -> List[DocumentSummary]:
    """List uploaded documents, newest first."""
    config = get_config()
    catalog = CatalogService.get_instance(config.database.path)
    return [
        DocumentSummary(
            id=doc.id,
            filename=doc.filename,
            mime_type=doc.mime_type,
            upload_date=doc.upload_date,
            external_uri=doc.external_uri,
            synced=doc.synced,
        )
        for doc in catalog.list_documents()
    ]
