from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from blob_store import BlobStore, get_blob_store
from exceptions import NotFound
from logging_config import get_logger

logger = get_logger(__name__)

# Stored blobs served by token, for inline previews built from a file's ``filename``.
router = APIRouter(
    prefix="/uploads",
    tags=["uploads"],
)

@router.get("/{token}")
async def serve_blob(
    token: str,
    blob_store: BlobStore = Depends(get_blob_store)
):
    if not await blob_store.exists(token):
        logger.warning(f"Blob not found for preview: {token}")
        raise NotFound("File not found on disk")
    return FileResponse(path=blob_store.path_for(token))
