"""Read-side views of the hierarchy: flat listings, folder detail and the full tree.

Membership is always derived from the canonical ``parent_id`` /
``folder_id`` pointers, never from the mirror lists on Folder.
"""
import math
import uuid
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

import crud, models, schemas
from config import settings
from exceptions import NotFound, StorageFailure
from filters import FolderFilter, FileFilter, compile_folder_filter, compile_file_filter, folder_search_clause, file_search_clause
from logging_config import get_logger

logger = get_logger(__name__)

def _page_window(page: int, limit: Optional[int]) -> tuple:
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    page = max(page, 1)
    return page, limit, (page - 1) * limit

def _pagination(page: int, limit: int, total: int) -> schemas.Pagination:
    return schemas.Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))

def file_view(file: models.File, folder: Optional[models.Folder] = None) -> schemas.FileRead:
    view = schemas.FileRead.model_validate(file)
    if folder is not None:
        view.folder = schemas.FolderSummary.model_validate(folder)
    return view

async def describe_file(db: AsyncSession, file: models.File) -> schemas.FileRead:
    folder = await crud.get_folder(db, file.folder_id) if file.folder_id is not None else None
    return file_view(file, folder)

async def describe_files(db: AsyncSession, files: List[models.File]) -> List[schemas.FileRead]:
    folders = await crud.get_folders_by_ids(db, (f.folder_id for f in files))
    return [file_view(f, folders.get(f.folder_id)) for f in files]

async def list_folders(db: AsyncSession, flt: FolderFilter, page: int = 1, limit: Optional[int] = None) -> schemas.FolderPage:
    page, limit, offset = _page_window(page, limit)
    folders, total = await crud.query_folders(db, compile_folder_filter(flt), offset=offset, limit=limit)
    logger.debug(f"Listed {len(folders)} of {total} folder(s) for {flt.model_dump(exclude_none=True)}")
    return schemas.FolderPage(
        data=[schemas.FolderRead.model_validate(f) for f in folders],
        pagination=_pagination(page, limit, total),
    )

async def list_files(db: AsyncSession, flt: FileFilter, page: int = 1, limit: Optional[int] = None) -> schemas.FilePage:
    page, limit, offset = _page_window(page, limit)
    files, total = await crud.query_files(db, compile_file_filter(flt), offset=offset, limit=limit)
    logger.debug(f"Listed {len(files)} of {total} file(s) for {flt.model_dump(exclude_none=True)}")
    return schemas.FilePage(
        data=await describe_files(db, files),
        pagination=_pagination(page, limit, total),
    )

async def get_folder_detail(
    db: AsyncSession,
    folder_id: uuid.UUID,
    page: int = 1,
    limit: Optional[int] = None,
    search: Optional[str] = None
) -> schemas.FolderDetail:
    folder = await crud.get_folder(db, folder_id)
    if folder is None:
        logger.warning(f"Folder not found: {folder_id}")
        raise NotFound("Folder not found")

    page, limit, offset = _page_window(page, limit)
    folder_clauses = [models.Folder.parent_id == folder.id]
    file_clauses = [models.File.folder_id == folder.id]
    search = (search or "").strip()
    if search:
        folder_clauses.append(folder_search_clause(search))
        file_clauses.append(file_search_clause(search))

    children, total_folders = await crud.query_folders(db, folder_clauses, offset=offset, limit=limit)
    files, total_files = await crud.query_files(db, file_clauses, offset=offset, limit=limit, newest_first=False)
    total = total_folders + total_files

    return schemas.FolderDetail(
        folder=schemas.FolderRead.model_validate(folder),
        contents=schemas.FolderContents(
            folders=[schemas.FolderRead.model_validate(c) for c in children],
            files=[file_view(f, folder) for f in files],
        ),
        pagination=schemas.FolderContentsPagination(
            page=page,
            limit=limit,
            total=total,
            total_folders=total_folders,
            total_files=total_files,
            pages=math.ceil(total / limit),
        ),
    )

async def build_tree(
    db: AsyncSession,
    parent_id: Optional[uuid.UUID] = None,
    max_depth: Optional[int] = None
) -> schemas.FolderTree:
    """Materialize every folder below ``parent_id`` (root by default) with its files.

    Two reads load the whole hierarchy; nodes are then assembled in memory,
    siblings and files ordered by name. ``rootFiles`` holds the files placed
    directly at ``parent_id``.
    """
    max_depth = max_depth or settings.MAX_TREE_DEPTH
    start_level = 0
    if parent_id is not None:
        start = await crud.get_folder(db, parent_id)
        if start is None:
            raise NotFound("Folder not found")
        start_level = start.level + 1

    folders_by_parent: Dict[Optional[uuid.UUID], List[models.Folder]] = defaultdict(list)
    for folder in await crud.all_folders(db):
        folders_by_parent[folder.parent_id].append(folder)
    files_by_folder: Dict[Optional[uuid.UUID], List[models.File]] = defaultdict(list)
    for file in await crud.all_files(db):
        files_by_folder[file.folder_id].append(file)

    def assemble(current_id: Optional[uuid.UUID], depth: int) -> List[schemas.TreeNode]:
        level_folders = folders_by_parent.get(current_id, [])
        if level_folders and depth > max_depth:
            logger.error(f"Folder tree below {parent_id} exceeds maximum depth {max_depth}")
            raise StorageFailure("Folder hierarchy exceeds maximum depth")
        nodes = []
        for folder in level_folders:
            children = assemble(folder.id, depth + 1)
            files = [schemas.TreeFile.model_validate(f) for f in files_by_folder.get(folder.id, [])]
            nodes.append(schemas.TreeNode(
                id=folder.id,
                name=folder.name,
                description=folder.description,
                parent_id=folder.parent_id,
                path=folder.path,
                created_at=folder.created_at,
                updated_at=folder.updated_at,
                level=start_level + depth,
                children=children,
                files=files,
                has_children=bool(children),
                has_files=bool(files),
            ))
        return nodes

    tree = assemble(parent_id, 0)
    root_files = [schemas.TreeFile.model_validate(f) for f in files_by_folder.get(parent_id, [])]
    logger.debug(f"Built tree with {len(tree)} top-level folder(s) and {len(root_files)} loose file(s)")
    return schemas.FolderTree(folders=tree, root_files=root_files)
