"""Translate listing filters into SQLAlchemy predicates.

Filters arrive as raw query-string values. Values that are empty or that
cannot be understood (an unknown file-type category, an unparseable
date) are dropped from the predicate instead of failing the request.
The only strict input is the folder scope: a malformed folder id is an
``InvalidArgument``.
"""
import uuid
from datetime import datetime, time, timezone
from typing import List, Optional, Union, Literal

from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

import models
from exceptions import InvalidArgument
from logging_config import get_logger

logger = get_logger(__name__)

ROOT = "root"

Scope = Union[uuid.UUID, Literal["root"], None]

FILE_TYPE_CATEGORIES = {
    "images": "images",
    "image": "images",
    "documents": "documents",
    "document": "documents",
    "pdfs": "pdfs",
    "pdf": "pdfs",
}

class FolderFilter(BaseModel):
    parent: Scope = None
    search: Optional[str] = None
    description: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

class FileFilter(BaseModel):
    folder: Scope = None
    search: Optional[str] = None
    file_type: Optional[str] = None
    description: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

def parse_scope(raw: Optional[str]) -> Scope:
    """Absent (or the browser's ``"undefined"``) -> None, ``"null"``/empty -> ROOT, else a folder id."""
    if raw is None or raw == "undefined":
        return None
    raw = raw.strip()
    if raw in ("", "null"):
        return ROOT
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise InvalidArgument(f"Invalid folder id: {raw}")

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None

def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

def contains(column, term: str) -> ColumnElement:
    return column.ilike(f"%{_escape_like(term)}%", escape="\\")

def folder_search_clause(search: str) -> ColumnElement:
    return or_(contains(models.Folder.name, search), contains(models.Folder.description, search))

def file_search_clause(search: str) -> ColumnElement:
    return or_(contains(models.File.name, search), contains(models.File.original_name, search))

def file_type_clause(file_type: Optional[str]) -> Optional[ColumnElement]:
    file_type = _clean(file_type)
    if not file_type:
        return None
    category = FILE_TYPE_CATEGORIES.get(file_type.lower())
    if category == "images":
        return models.File.mimetype.ilike("image/%")
    if category == "documents":
        return or_(models.File.mimetype.ilike("application/%"), models.File.mimetype.ilike("text/%"))
    if category == "pdfs":
        return models.File.mimetype == "application/pdf"
    logger.debug(f"Ignoring unknown file type filter: {file_type}")
    return None

def parse_date_bound(raw: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    raw = _clean(raw)
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        logger.debug(f"Ignoring unparseable date filter: {raw}")
        return None
    # The day is the caller's calendar day; convert to UTC only afterwards.
    if end_of_day:
        value = datetime.combine(value.date(), time.max, tzinfo=value.tzinfo)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def date_range_clauses(column, date_from: Optional[str], date_to: Optional[str]) -> List[ColumnElement]:
    clauses = []
    lower = parse_date_bound(date_from)
    upper = parse_date_bound(date_to, end_of_day=True)
    if lower is not None:
        clauses.append(column >= lower)
    if upper is not None:
        clauses.append(column <= upper)
    return clauses

def compile_folder_filter(flt: FolderFilter) -> List[ColumnElement]:
    clauses = []
    search = _clean(flt.search)
    description = _clean(flt.description)

    if isinstance(flt.parent, uuid.UUID):
        clauses.append(models.Folder.parent_id == flt.parent)
    elif flt.parent == ROOT or not search:
        # An unscoped listing is root-only unless a search spans every level.
        clauses.append(models.Folder.parent_id.is_(None))

    if search:
        clauses.append(folder_search_clause(search))
    if description:
        clauses.append(contains(models.Folder.description, description))
    clauses.extend(date_range_clauses(models.Folder.created_at, flt.date_from, flt.date_to))
    return clauses

def compile_file_filter(flt: FileFilter) -> List[ColumnElement]:
    clauses = []
    search = _clean(flt.search)
    description = _clean(flt.description)

    if isinstance(flt.folder, uuid.UUID):
        clauses.append(models.File.folder_id == flt.folder)
    elif flt.folder == ROOT:
        clauses.append(models.File.folder_id.is_(None))

    if search:
        clauses.append(file_search_clause(search))
    type_clause = file_type_clause(flt.file_type)
    if type_clause is not None:
        clauses.append(type_clause)
    if description:
        clauses.append(contains(models.File.description, description))
    clauses.extend(date_range_clauses(models.File.created_at, flt.date_from, flt.date_to))
    return clauses
