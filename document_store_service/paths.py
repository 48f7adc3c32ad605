import uuid
from typing import Optional, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

import crud, models, schemas
from config import settings
from exceptions import NotFound, StorageFailure
from logging_config import get_logger

logger = get_logger(__name__)

ROOT_PATH = "/"

def child_path(parent: models.Folder) -> Tuple[str, int]:
    """Materialized path and depth for a folder placed directly under ``parent``."""
    return f"{parent.path.rstrip('/')}/{parent.name}", parent.level + 1

async def compute_path(db: AsyncSession, parent_id: Optional[uuid.UUID]) -> Tuple[str, int]:
    if parent_id is None:
        return ROOT_PATH, 0
    parent = await crud.get_folder(db, parent_id)
    if parent is None:
        raise NotFound("Parent folder not found")
    return child_path(parent)

async def resolve_breadcrumb(
    db: AsyncSession,
    folder_id: uuid.UUID,
    max_depth: Optional[int] = None
) -> List[schemas.BreadcrumbEntry]:
    """Walk from ``folder_id`` up to the root and return the chain root-first.

    A missing ancestor means a dangling ``parent_id``; it is reported as
    NotFound like a missing target.
    """
    max_depth = max_depth or settings.MAX_TREE_DEPTH
    chain = []
    seen = set()
    current_id = folder_id
    while current_id is not None:
        if current_id in seen or len(chain) > max_depth:
            logger.error(f"Parent chain of folder {folder_id} loops or exceeds depth {max_depth}")
            raise StorageFailure("Folder hierarchy is corrupted")
        seen.add(current_id)

        folder = await crud.get_folder(db, current_id)
        if folder is None:
            if current_id == folder_id:
                raise NotFound("Folder not found")
            logger.error(f"Folder {folder_id} has a dangling ancestor reference {current_id}")
            raise NotFound(f"Ancestor folder {current_id} not found")

        chain.append(schemas.BreadcrumbEntry(id=folder.id, name=folder.name))
        current_id = folder.parent_id

    chain.reverse()
    return chain
