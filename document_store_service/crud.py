import uuid as py_uuid
from typing import Optional, List, Dict, Iterable, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.future import select

import models
from exceptions import Conflict, NotFound, StorageFailure
from logging_config import get_logger

logger = get_logger(__name__)

async def _run(db: AsyncSession, stmt):
    try:
        return await db.execute(stmt)
    except SQLAlchemyError as e:
        logger.exception("Entity store read failed")
        raise StorageFailure(f"Entity store read failed: {e}") from e

async def get_folder(db: AsyncSession, folder_id: py_uuid.UUID) -> Optional[models.Folder]:
    result = await _run(db, select(models.Folder).filter(models.Folder.id == folder_id))
    return result.scalars().first()

async def get_file(db: AsyncSession, file_id: py_uuid.UUID) -> Optional[models.File]:
    result = await _run(db, select(models.File).filter(models.File.id == file_id))
    return result.scalars().first()

async def get_folders_by_ids(db: AsyncSession, folder_ids: Iterable[py_uuid.UUID]) -> Dict[py_uuid.UUID, models.Folder]:
    folder_ids = {folder_id for folder_id in folder_ids if folder_id is not None}
    if not folder_ids:
        return {}
    result = await _run(db, select(models.Folder).filter(models.Folder.id.in_(folder_ids)))
    return {folder.id: folder for folder in result.scalars().all()}

async def find_sibling_folder(
    db: AsyncSession,
    name: str,
    parent_id: Optional[py_uuid.UUID],
    exclude_id: Optional[py_uuid.UUID] = None
) -> Optional[models.Folder]:
    stmt = select(models.Folder).filter(models.Folder.name == name)
    if parent_id is None:
        stmt = stmt.filter(models.Folder.parent_id.is_(None))
    else:
        stmt = stmt.filter(models.Folder.parent_id == parent_id)
    if exclude_id is not None:
        stmt = stmt.filter(models.Folder.id != exclude_id)
    result = await _run(db, stmt)
    return result.scalars().first()

async def find_file_in_folder(
    db: AsyncSession,
    name: str,
    folder_id: Optional[py_uuid.UUID],
    exclude_id: Optional[py_uuid.UUID] = None
) -> Optional[models.File]:
    stmt = select(models.File).filter(models.File.name == name)
    if folder_id is None:
        stmt = stmt.filter(models.File.folder_id.is_(None))
    else:
        stmt = stmt.filter(models.File.folder_id == folder_id)
    if exclude_id is not None:
        stmt = stmt.filter(models.File.id != exclude_id)
    result = await _run(db, stmt)
    return result.scalars().first()

async def count_folders(db: AsyncSession, clauses: Sequence = ()) -> int:
    result = await _run(db, select(func.count()).select_from(models.Folder).filter(*clauses))
    return result.scalar_one()

async def count_files(db: AsyncSession, clauses: Sequence = ()) -> int:
    result = await _run(db, select(func.count()).select_from(models.File).filter(*clauses))
    return result.scalar_one()

async def count_child_folders(db: AsyncSession, folder_id: py_uuid.UUID) -> int:
    return await count_folders(db, [models.Folder.parent_id == folder_id])

async def count_folder_files(db: AsyncSession, folder_id: py_uuid.UUID) -> int:
    return await count_files(db, [models.File.folder_id == folder_id])

async def query_folders(
    db: AsyncSession,
    clauses: Sequence = (),
    offset: int = 0,
    limit: Optional[int] = None
) -> Tuple[List[models.Folder], int]:
    stmt = select(models.Folder).filter(*clauses).order_by(models.Folder.name.asc(), models.Folder.id)
    if limit is not None:
        stmt = stmt.offset(offset).limit(limit)
    result = await _run(db, stmt)
    return list(result.scalars().all()), await count_folders(db, clauses)

async def query_files(
    db: AsyncSession,
    clauses: Sequence = (),
    offset: int = 0,
    limit: Optional[int] = None,
    newest_first: bool = True
) -> Tuple[List[models.File], int]:
    if newest_first:
        order = (models.File.created_at.desc(), models.File.name.asc())
    else:
        order = (models.File.name.asc(), models.File.id)
    stmt = select(models.File).filter(*clauses).order_by(*order)
    if limit is not None:
        stmt = stmt.offset(offset).limit(limit)
    result = await _run(db, stmt)
    return list(result.scalars().all()), await count_files(db, clauses)

async def all_folders(db: AsyncSession) -> List[models.Folder]:
    result = await _run(db, select(models.Folder).order_by(models.Folder.name.asc(), models.Folder.id))
    return list(result.scalars().all())

async def all_files(db: AsyncSession) -> List[models.File]:
    result = await _run(db, select(models.File).order_by(models.File.name.asc(), models.File.id))
    return list(result.scalars().all())

def _with_id(ids: Optional[List[str]], entity_id: py_uuid.UUID) -> List[str]:
    ids = list(ids or [])
    if str(entity_id) not in ids:
        ids.append(str(entity_id))
    return ids

def _without_id(ids: Optional[List[str]], entity_id: py_uuid.UUID) -> List[str]:
    return [i for i in (ids or []) if i != str(entity_id)]

# The mirror columns are JSON; assigning a new list is what marks them dirty.
def attach_child(parent: models.Folder, child_id: py_uuid.UUID) -> None:
    parent.children = _with_id(parent.children, child_id)

def detach_child(parent: models.Folder, child_id: py_uuid.UUID) -> None:
    parent.children = _without_id(parent.children, child_id)

def attach_file(folder: models.Folder, file_id: py_uuid.UUID) -> None:
    folder.files = _with_id(folder.files, file_id)

def detach_file(folder: models.Folder, file_id: py_uuid.UUID) -> None:
    folder.files = _without_id(folder.files, file_id)

def _is_foreign_key_violation(error: IntegrityError) -> bool:
    # asyncpg carries the SQLSTATE; SQLite only says "FOREIGN KEY constraint failed".
    if getattr(error.orig, "sqlstate", None) == "23503":
        return True
    return "foreign key" in str(error.orig).lower()

async def commit(
    db: AsyncSession,
    *refresh,
    conflict_message: str = "Entity already exists in this location",
    missing_message: str = "Folder not found",
    in_use_message: Optional[str] = None
) -> None:
    """Commit the staged unit of work and translate store rejections.

    A unique-index violation is a ``Conflict``. A row that vanished under a
    concurrent writer (an UPDATE matching nothing, or a foreign key pointing
    at a deleted folder) is ``NotFound`` with ``missing_message``. When the
    unit deletes a row, pass ``in_use_message``: a foreign key still
    referencing it is then a ``Conflict`` instead.
    """
    try:
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        logger.warning(f"Row changed underneath commit: {e}")
        raise NotFound(missing_message) from e
    except IntegrityError as e:
        await db.rollback()
        if not _is_foreign_key_violation(e):
            logger.warning(f"Uniqueness violation on commit: {e.orig}")
            raise Conflict(conflict_message) from e
        logger.warning(f"Foreign key violation on commit: {e.orig}")
        if in_use_message is not None:
            raise Conflict(in_use_message) from e
        raise NotFound(missing_message) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Entity store write failed")
        raise StorageFailure(f"Entity store write failed: {e}") from e
    for obj in refresh:
        await db.refresh(obj)
