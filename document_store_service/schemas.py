import uuid
from datetime import datetime
from typing import Optional, List, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class FolderCreate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = ""
    parent_id: Optional[uuid.UUID] = None

class FolderUpdate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None

class FolderSummary(APIModel):
    id: uuid.UUID
    name: str
    path: str

class FolderRead(APIModel):
    id: uuid.UUID
    name: str
    description: str
    parent_id: Optional[uuid.UUID] = None
    path: str
    level: int
    children: List[uuid.UUID] = []
    files: List[uuid.UUID] = []
    created_at: datetime
    updated_at: datetime

class FileCreate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = ""
    folder_id: Optional[uuid.UUID] = None
    original_name: str
    mimetype: str
    size: int

class FileUpdate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = None
    folder_id: Optional[uuid.UUID] = None

class FileMove(APIModel):
    target_folder_id: Optional[uuid.UUID] = None

class FileRead(APIModel):
    id: uuid.UUID
    name: str
    original_name: str
    description: str
    filename: str
    mimetype: str
    size: int
    extension: str
    folder_id: Optional[uuid.UUID] = None
    upload_progress: int
    is_uploaded: bool
    created_at: datetime
    updated_at: datetime
    folder: Optional[FolderSummary] = None

class Pagination(APIModel):
    page: int
    limit: int
    total: int
    pages: int

class FolderPage(APIModel):
    data: List[FolderRead]
    pagination: Pagination

class FilePage(APIModel):
    data: List[FileRead]
    pagination: Pagination

class FolderContents(APIModel):
    folders: List[FolderRead]
    files: List[FileRead]

class FolderContentsPagination(Pagination):
    total_folders: int
    total_files: int

class FolderDetail(APIModel):
    folder: FolderRead
    contents: FolderContents
    pagination: FolderContentsPagination

class BreadcrumbEntry(APIModel):
    id: uuid.UUID
    name: str

class TreeFile(APIModel):
    id: uuid.UUID
    name: str
    original_name: str
    filename: str
    size: int
    mimetype: str
    extension: str
    folder_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    type: Literal["file"] = "file"

class TreeNode(APIModel):
    id: uuid.UUID
    name: str
    description: str
    parent_id: Optional[uuid.UUID] = None
    path: str
    created_at: datetime
    updated_at: datetime
    level: int
    children: List["TreeNode"]
    files: List[TreeFile]
    has_children: bool
    has_files: bool

TreeNode.model_rebuild()

class FolderTree(APIModel):
    folders: List[TreeNode]
    root_files: List[TreeFile]

class Message(APIModel):
    message: str
