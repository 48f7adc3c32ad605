"""Mutations of the folder/file tree.

Every operation re-reads current state, runs its existence and
uniqueness checks, then stages all of its writes (the entity itself and
the parent-side mirror lists) in one session and commits once. The
unique indexes on ``(name, parent_id)`` and ``(name, folder_id)`` are the
authoritative guard; a racing writer that slips past the checks here is
rejected at commit time with the same ``Conflict``, and a folder deleted
by a concurrent writer before the commit surfaces as ``NotFound``.
"""
import os
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

import crud, models, paths, schemas
from blob_store import BlobStore
from exceptions import InvalidArgument, NotFound, Conflict, Unsupported, HierarchyError
from logging_config import get_logger

logger = get_logger(__name__)

FOLDER_EXISTS = "Folder with this name already exists in this location"
FILE_EXISTS = "File with this name already exists in this location"
FOLDER_NOT_EMPTY = "Cannot delete folder that contains files or subfolders"

UNCHANGED = object()

async def _require_folder(db: AsyncSession, folder_id: uuid.UUID, message: str = "Folder not found") -> models.Folder:
    folder = await crud.get_folder(db, folder_id)
    if folder is None:
        logger.warning(f"{message}: {folder_id}")
        raise NotFound(message)
    return folder

async def _require_file(db: AsyncSession, file_id: uuid.UUID) -> models.File:
    file = await crud.get_file(db, file_id)
    if file is None:
        logger.warning(f"File not found: {file_id}")
        raise NotFound("File not found")
    return file

async def create_folder(db: AsyncSession, data: schemas.FolderCreate) -> models.Folder:
    name = (data.name or "").strip()
    if not name:
        raise InvalidArgument("Folder name is required")

    parent = None
    if data.parent_id is not None:
        parent = await _require_folder(db, data.parent_id, "Parent folder not found")

    if await crud.find_sibling_folder(db, name, data.parent_id):
        logger.warning(f"Folder '{name}' already exists under parent {data.parent_id}")
        raise Conflict(FOLDER_EXISTS)

    path, level = paths.child_path(parent) if parent else (paths.ROOT_PATH, 0)
    folder = models.Folder(
        id=uuid.uuid4(),
        name=name,
        description=(data.description or "").strip(),
        parent_id=data.parent_id,
        path=path,
        level=level,
        children=[],
        files=[],
    )
    db.add(folder)
    if parent is not None:
        crud.attach_child(parent, folder.id)

    await crud.commit(db, folder, conflict_message=FOLDER_EXISTS, missing_message="Parent folder not found")
    logger.info(f"Created folder '{folder.name}' (ID: {folder.id}) at {folder.path}, level {folder.level}")
    return folder

async def rename_folder(
    db: AsyncSession,
    folder_id: uuid.UUID,
    name: Optional[str] = None,
    description: Optional[str] = None,
    parent_id=UNCHANGED
) -> models.Folder:
    """Rename and/or re-describe a folder.

    ``parent_id`` is accepted only so that an update carrying the folder's
    current parent is not mistaken for a move; any other value is rejected.
    """
    folder = await _require_folder(db, folder_id)
    if parent_id is not UNCHANGED and parent_id != folder.parent_id:
        _reject_move(folder_id, parent_id)

    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidArgument("Folder name cannot be empty")
        if name != folder.name and await crud.find_sibling_folder(db, name, folder.parent_id, exclude_id=folder.id):
            logger.warning(f"Cannot rename folder {folder_id} to '{name}': sibling exists")
            raise Conflict(FOLDER_EXISTS)
        folder.name = name

    if description is not None:
        folder.description = description.strip()

    # Descendants keep their stored path; it is not re-derived here.
    folder.updated_at = datetime.utcnow()
    await crud.commit(db, folder, conflict_message=FOLDER_EXISTS)
    logger.info(f"Updated folder {folder.id} (name: '{folder.name}')")
    return folder

def _reject_move(folder_id: uuid.UUID, parent_id: Optional[uuid.UUID]) -> None:
    logger.warning(f"Rejected attempt to move folder {folder_id} under {parent_id}")
    raise Unsupported("Moving folders is not supported")

async def move_folder(db: AsyncSession, folder_id: uuid.UUID, parent_id: Optional[uuid.UUID]) -> models.Folder:
    """Folders cannot be re-parented; asking for the current parent is a no-op."""
    folder = await _require_folder(db, folder_id)
    if parent_id != folder.parent_id:
        _reject_move(folder_id, parent_id)
    return folder

async def delete_folder(db: AsyncSession, folder_id: uuid.UUID) -> None:
    folder = await _require_folder(db, folder_id)

    child_count = await crud.count_child_folders(db, folder.id)
    file_count = await crud.count_folder_files(db, folder.id)
    if child_count or file_count:
        logger.warning(f"Refusing to delete folder {folder_id}: {child_count} subfolder(s), {file_count} file(s)")
        raise Conflict(FOLDER_NOT_EMPTY)

    if folder.parent_id is not None:
        parent = await crud.get_folder(db, folder.parent_id)
        if parent is not None:
            crud.detach_child(parent, folder.id)

    name = folder.name
    await db.delete(folder)
    await crud.commit(db, in_use_message=FOLDER_NOT_EMPTY)
    logger.info(f"Deleted folder '{name}' (ID: {folder_id})")

async def create_file(db: AsyncSession, metadata: schemas.FileCreate, blob_token: str) -> models.File:
    """Register an already-written blob as a File in its folder.

    The blob is not touched here; on failure the caller owns the orphan.
    """
    name = (metadata.name or "").strip() or metadata.original_name.strip()
    if not name:
        raise InvalidArgument("File name is required")
    if metadata.size < 0:
        raise InvalidArgument("File size cannot be negative")

    folder = None
    if metadata.folder_id is not None:
        folder = await _require_folder(db, metadata.folder_id)

    if await crud.find_file_in_folder(db, name, metadata.folder_id):
        logger.warning(f"File '{name}' already exists in folder {metadata.folder_id}")
        raise Conflict(FILE_EXISTS)

    file = models.File(
        id=uuid.uuid4(),
        name=name,
        original_name=metadata.original_name,
        description=(metadata.description or "").strip(),
        filename=blob_token,
        mimetype=metadata.mimetype,
        size=metadata.size,
        extension=os.path.splitext(metadata.original_name)[1].lower(),
        folder_id=metadata.folder_id,
        upload_progress=100,
        is_uploaded=True,
    )
    db.add(file)
    if folder is not None:
        crud.attach_file(folder, file.id)

    await crud.commit(db, file, conflict_message=FILE_EXISTS)
    logger.info(f"Created file '{file.name}' (ID: {file.id}, blob: {blob_token}) in folder {file.folder_id}")
    return file

async def place_uploaded_file(
    db: AsyncSession,
    blob_store: BlobStore,
    metadata: schemas.FileCreate,
    blob_token: str
) -> models.File:
    """``create_file`` with the compensating blob delete when registration fails."""
    try:
        return await create_file(db, metadata, blob_token)
    except HierarchyError:
        logger.info(f"File registration failed, discarding blob {blob_token}")
        await blob_store.discard(blob_token)
        raise

async def rename_or_move_file(
    db: AsyncSession,
    file_id: uuid.UUID,
    name: Optional[str] = None,
    description: Optional[str] = None,
    folder_id=UNCHANGED
) -> models.File:
    """Rename, re-describe and/or move a file.

    ``folder_id`` left as ``UNCHANGED`` keeps the file where it is; ``None``
    moves it to the root level.
    """
    file = await _require_file(db, file_id)

    moving = folder_id is not UNCHANGED and folder_id != file.folder_id
    target_folder_id = folder_id if moving else file.folder_id

    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidArgument("File name cannot be empty")
    new_name = name or file.name

    if (moving or new_name != file.name) and await crud.find_file_in_folder(
        db, new_name, target_folder_id, exclude_id=file.id
    ):
        logger.warning(f"Cannot place file {file_id} as '{new_name}' in folder {target_folder_id}: name taken")
        raise Conflict(FILE_EXISTS)

    if moving:
        target = None
        if target_folder_id is not None:
            target = await _require_folder(db, target_folder_id, "Target folder not found")
        if file.folder_id is not None:
            source = await crud.get_folder(db, file.folder_id)
            if source is not None:
                crud.detach_file(source, file.id)
        if target is not None:
            crud.attach_file(target, file.id)
        logger.info(f"Moving file {file.id} from folder {file.folder_id} to {target_folder_id}")
        file.folder_id = target_folder_id

    file.name = new_name
    if description is not None:
        file.description = description.strip()
    file.updated_at = datetime.utcnow()

    await crud.commit(
        db, file, conflict_message=FILE_EXISTS,
        missing_message="Target folder not found" if moving else "File not found",
    )
    logger.info(f"Updated file {file.id} (name: '{file.name}', folder: {file.folder_id})")
    return file

async def delete_file(db: AsyncSession, file_id: uuid.UUID) -> models.File:
    """Remove the record and its mirror entry. Returns the deleted row so the caller can drop the blob."""
    file = await _require_file(db, file_id)

    if file.folder_id is not None:
        folder = await crud.get_folder(db, file.folder_id)
        if folder is not None:
            crud.detach_file(folder, file.id)

    name = file.name
    await db.delete(file)
    await crud.commit(db, missing_message="File not found")
    logger.info(f"Deleted file record '{name}' (ID: {file_id})")
    return file

async def delete_file_and_blob(db: AsyncSession, blob_store: BlobStore, file_id: uuid.UUID) -> models.File:
    file = await delete_file(db, file_id)
    await blob_store.discard(file.filename)
    return file
