import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

import hierarchy, paths, schemas, tree
from database import get_db
from events import ProgressBroadcaster, get_event_sink
from filters import FolderFilter, parse_scope
from logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/folders",
    tags=["folders"],
)

@router.get("/", response_model=schemas.FolderPage)
async def list_folders(
    parent_id: Optional[str] = Query(None, alias="parentId"),
    search: Optional[str] = None,
    description: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db)
):
    flt = FolderFilter(
        parent=parse_scope(parent_id),
        search=search,
        description=description,
        date_from=date_from,
        date_to=date_to,
    )
    return await tree.list_folders(db, flt, page=page, limit=limit)

@router.get("/tree", response_model=schemas.FolderTree)
async def get_folder_tree(
    parent_id: Optional[uuid.UUID] = Query(None, alias="parentId"),
    db: AsyncSession = Depends(get_db)
):
    logger.info(f"Tree request (root: {parent_id})")
    return await tree.build_tree(db, parent_id=parent_id)

@router.get("/{folder_id}", response_model=schemas.FolderDetail)
async def get_folder(
    folder_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    return await tree.get_folder_detail(db, folder_id, page=page, limit=limit, search=search)

@router.get("/{folder_id}/breadcrumb", response_model=List[schemas.BreadcrumbEntry])
async def get_breadcrumb(
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    return await paths.resolve_breadcrumb(db, folder_id)

@router.post("/", response_model=schemas.FolderRead, status_code=201)
async def create_folder(
    payload: schemas.FolderCreate,
    db: AsyncSession = Depends(get_db),
    events: ProgressBroadcaster = Depends(get_event_sink)
):
    logger.info(f"Create folder request: name='{payload.name}', parent={payload.parent_id}")
    folder = await hierarchy.create_folder(db, payload)
    events.publish({"type": "folder_created", "folderId": folder.id, "parentId": folder.parent_id})
    return folder

@router.put("/{folder_id}", response_model=schemas.FolderRead)
async def update_folder(
    folder_id: uuid.UUID,
    payload: schemas.FolderUpdate,
    db: AsyncSession = Depends(get_db),
    events: ProgressBroadcaster = Depends(get_event_sink)
):
    parent_id = payload.parent_id if "parent_id" in payload.model_fields_set else hierarchy.UNCHANGED
    folder = await hierarchy.rename_folder(
        db, folder_id, name=payload.name, description=payload.description, parent_id=parent_id
    )
    events.publish({"type": "folder_updated", "folderId": folder.id})
    return folder

@router.post("/{folder_id}/move", response_model=schemas.FolderRead)
async def move_folder(
    folder_id: uuid.UUID,
    payload: schemas.FolderUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await hierarchy.move_folder(db, folder_id, payload.parent_id)

@router.delete("/{folder_id}", response_model=schemas.Message)
async def delete_folder(
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    events: ProgressBroadcaster = Depends(get_event_sink)
):
    await hierarchy.delete_folder(db, folder_id)
    events.publish({"type": "folder_deleted", "folderId": folder_id})
    return schemas.Message(message="Folder deleted successfully")
