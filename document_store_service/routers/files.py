import mimetypes
import os
import uuid
from typing import Optional

from fastapi import APIRouter, UploadFile, File, Form, Header, Depends, Query, Request
from fastapi.responses import FileResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

import crud, hierarchy, schemas, tree
from blob_store import BlobStore, get_blob_store
from config import Settings, get_settings
from database import get_db
from events import ProgressBroadcaster, get_event_sink
from exceptions import HierarchyError, InvalidArgument, NotFound
from filters import FileFilter, ROOT, parse_scope
from logging_config import get_logger
from multipart_stream import MultipartStream

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/files",
    tags=["files"],
)

async def _load_file(db: AsyncSession, file_id: uuid.UUID):
    file_meta = await crud.get_file(db, file_id)
    if not file_meta:
        logger.warning(f"File not found: ID {file_id}")
        raise NotFound("File not found")
    return file_meta

@router.get("/", response_model=schemas.FilePage)
async def list_files(
    folder_id: Optional[str] = Query(None, alias="folderId"),
    search: Optional[str] = None,
    file_type: Optional[str] = Query(None, alias="type"),
    description: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db)
):
    flt = FileFilter(
        folder=parse_scope(folder_id),
        search=search,
        file_type=file_type,
        description=description,
        date_from=date_from,
        date_to=date_to,
    )
    return await tree.list_files(db, flt, page=page, limit=limit)

def _resolve_mimetype(content_type: Optional[str], original_name: str, upload_id: str, current_settings: Settings) -> str:
    mimetype = content_type or mimetypes.guess_type(original_name)[0] or "application/octet-stream"
    if mimetype not in current_settings.ALLOWED_MIME_TYPES:
        logger.warning(f"Upload {upload_id} rejected: mimetype '{mimetype}' not allowed")
        raise InvalidArgument("File type not allowed")
    return mimetype

def _progress_reporter(events: ProgressBroadcaster, upload_id: str, original_name: str, expected_size: Optional[int]):
    def report_progress(received: int):
        progress = min(round(received / expected_size * 100), 100) if expected_size else 0
        events.publish({
            "type": "upload_progress",
            "fileId": upload_id,
            "filename": original_name,
            "progress": progress,
            "size": expected_size or received,
        })
    return report_progress

async def _register_upload(
    db: AsyncSession,
    blob_store: BlobStore,
    events: ProgressBroadcaster,
    upload_id: str,
    token: str,
    size: int,
    original_name: str,
    mimetype: str,
    name: Optional[str],
    description: Optional[str],
    folder_id: Optional[str]
) -> schemas.FileRead:
    try:
        scope = parse_scope(folder_id)
    except InvalidArgument:
        await blob_store.discard(token)
        raise
    metadata = schemas.FileCreate(
        name=name,
        description=description,
        folder_id=None if scope in (None, ROOT) else scope,
        original_name=original_name,
        mimetype=mimetype,
        size=size,
    )
    created = await hierarchy.place_uploaded_file(db, blob_store, metadata, token)

    view = await tree.describe_file(db, created)
    events.publish({"type": "upload_complete", "fileId": upload_id, "file": view})
    logger.info(f"Upload {upload_id} stored as '{created.name}' (ID: {created.id}, {size} bytes)")
    return view

@router.post("/upload", response_model=schemas.FileRead, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(""),
    folder_id: Optional[str] = Form(None, alias="folderId"),
    temp_file_id: Optional[str] = Form(None, alias="tempFileId"),
    x_upload_id: Optional[str] = Header(None),
    x_file_size: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    events: ProgressBroadcaster = Depends(get_event_sink),
    current_settings: Settings = Depends(get_settings)
):
    """Upload of an already-buffered multipart form; see ``/upload-stream`` for live progress."""
    upload_id = x_upload_id or temp_file_id or uuid.uuid4().hex
    original_name = file.filename or "upload"
    logger.info(f"Upload {upload_id}: filename '{original_name}', content_type '{file.content_type}', folder {folder_id}")

    try:
        parse_scope(folder_id)
        mimetype = _resolve_mimetype(file.content_type, original_name, upload_id, current_settings)
        try:
            token, size = await blob_store.put_stream(
                file,
                extension=os.path.splitext(original_name)[1],
                max_size=current_settings.MAX_UPLOAD_SIZE_BYTES,
                on_chunk=_progress_reporter(events, upload_id, original_name, x_file_size),
            )
        finally:
            await file.close()

        return await _register_upload(
            db, blob_store, events, upload_id, token, size, original_name, mimetype,
            name, description, folder_id,
        )
    except HierarchyError as e:
        events.publish({"type": "upload_error", "fileId": upload_id, "message": e.message})
        raise

@router.post("/upload-stream", response_model=schemas.FileRead, status_code=201)
async def upload_file_stream(
    request: Request,
    x_upload_id: Optional[str] = Header(None),
    x_file_size: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    events: ProgressBroadcaster = Depends(get_event_sink),
    current_settings: Settings = Depends(get_settings)
):
    """Multipart upload parsed straight off the request body.

    The file part is written to the blob store as its bytes arrive, and
    ``upload_progress`` is published per received chunk against
    ``X-File-Size``. Form fields may come before or after the file part.
    Only the first file part is stored.
    """
    fields = {}
    upload_id = x_upload_id
    token = None
    try:
        body = MultipartStream(request.headers.get("content-type"), request.stream())
        async for part in body.parts():
            if part.filename is None:
                fields[part.name] = await part.text()
                continue
            if token is not None:
                logger.debug(f"Upload {upload_id}: ignoring extra file part '{part.filename}'")
                continue

            upload_id = upload_id or fields.get("tempFileId") or uuid.uuid4().hex
            original_name = part.filename or "upload"
            logger.info(f"Streaming upload {upload_id}: filename '{original_name}', content_type '{part.content_type}'")
            mimetype = _resolve_mimetype(part.content_type, original_name, upload_id, current_settings)
            token, size = await blob_store.put_stream(
                part,
                extension=os.path.splitext(original_name)[1],
                max_size=current_settings.MAX_UPLOAD_SIZE_BYTES,
                on_chunk=_progress_reporter(events, upload_id, original_name, x_file_size),
            )

        if token is None:
            raise InvalidArgument("No file uploaded")
    except HierarchyError as e:
        if token is not None:
            await blob_store.discard(token)
        events.publish({"type": "upload_error", "fileId": upload_id or fields.get("tempFileId"), "message": e.message})
        raise

    try:
        return await _register_upload(
            db, blob_store, events, upload_id, token, size, original_name, mimetype,
            fields.get("name"), fields.get("description", ""), fields.get("folderId"),
        )
    except HierarchyError as e:
        events.publish({"type": "upload_error", "fileId": upload_id, "message": e.message})
        raise

@router.get("/{file_id}", response_model=schemas.FileRead)
async def get_file(
    file_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    return await tree.describe_file(db, await _load_file(db, file_id))

@router.get("/{file_id}/download")
async def download_file(
    file_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store)
):
    logger.info(f"Download request for file_id: {file_id}")
    file_meta = await _load_file(db, file_id)

    if not await blob_store.exists(file_meta.filename):
        logger.error(f"File {file_id} found in DB (blob: {file_meta.filename}) but not in storage. Inconsistency!")
        raise NotFound("File not found on disk")

    return FileResponse(
        path=blob_store.path_for(file_meta.filename),
        filename=file_meta.original_name,
        media_type=file_meta.mimetype
    )

@router.get("/{file_id}/content")
async def stream_file_content(
    file_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store)
):
    file_meta = await _load_file(db, file_id)
    chunks = await blob_store.open_read_stream(file_meta.filename)
    return StreamingResponse(chunks, media_type=file_meta.mimetype)

@router.put("/{file_id}", response_model=schemas.FileRead)
async def update_file(
    file_id: uuid.UUID,
    payload: schemas.FileUpdate,
    db: AsyncSession = Depends(get_db),
    events: ProgressBroadcaster = Depends(get_event_sink)
):
    updated = await hierarchy.rename_or_move_file(db, file_id, name=payload.name, description=payload.description)
    events.publish({"type": "file_updated", "fileId": updated.id})
    return await tree.describe_file(db, updated)

@router.patch("/{file_id}", response_model=schemas.FileRead)
async def patch_file(
    file_id: uuid.UUID,
    payload: schemas.FileUpdate,
    db: AsyncSession = Depends(get_db),
    events: ProgressBroadcaster = Depends(get_event_sink)
):
    folder_id = payload.folder_id if "folder_id" in payload.model_fields_set else hierarchy.UNCHANGED
    updated = await hierarchy.rename_or_move_file(
        db, file_id, name=payload.name, description=payload.description, folder_id=folder_id
    )
    events.publish({"type": "file_updated", "fileId": updated.id})
    return await tree.describe_file(db, updated)

@router.post("/{file_id}/move", response_model=schemas.FileRead)
async def move_file(
    file_id: uuid.UUID,
    payload: schemas.FileMove,
    db: AsyncSession = Depends(get_db),
    events: ProgressBroadcaster = Depends(get_event_sink)
):
    moved = await hierarchy.rename_or_move_file(db, file_id, folder_id=payload.target_folder_id)
    events.publish({"type": "file_updated", "fileId": moved.id})
    return await tree.describe_file(db, moved)

@router.delete("/{file_id}", response_model=schemas.Message)
async def delete_file(
    file_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    events: ProgressBroadcaster = Depends(get_event_sink)
):
    await hierarchy.delete_file_and_blob(db, blob_store, file_id)
    events.publish({"type": "file_deleted", "fileId": file_id})
    return schemas.Message(message="File deleted successfully")
