import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, ForeignKey, Index, JSON, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base

Base = declarative_base()

ROOT_ONLY = text("parent_id IS NULL")
ROOT_FILES_ONLY = text("folder_id IS NULL")

class Folder(Base):
    __tablename__ = "folders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(String, nullable=False, default="")
    parent_id = Column(UUID(as_uuid=True), ForeignKey("folders.id"), nullable=True, index=True)
    path = Column(String, nullable=False, default="/")
    level = Column(Integer, nullable=False, default=0)

    # Mirrors of folders.parent_id / files.folder_id; never authoritative.
    children = Column(JSON, nullable=False, default=list)
    files = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("uq_folders_name_parent", "name", "parent_id", unique=True),
        Index("uq_folders_root_name", "name", unique=True,
              sqlite_where=ROOT_ONLY, postgresql_where=ROOT_ONLY),
    )

    def __repr__(self):
        return f"<Folder(id={self.id}, name='{self.name}', parent_id={self.parent_id})>"

class File(Base):
    __tablename__ = "files"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    description = Column(String, nullable=False, default="")
    filename = Column(String, nullable=False, unique=True)
    mimetype = Column(String(255), nullable=False, index=True)
    size = Column(BigInteger, nullable=False)
    extension = Column(String(32), nullable=False, default="")
    folder_id = Column(UUID(as_uuid=True), ForeignKey("folders.id"), nullable=True, index=True)
    upload_progress = Column(Integer, nullable=False, default=0)
    is_uploaded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("uq_files_name_folder", "name", "folder_id", unique=True),
        Index("uq_files_root_name", "name", unique=True,
              sqlite_where=ROOT_FILES_ONLY, postgresql_where=ROOT_FILES_ONLY),
    )

    def __repr__(self):
        return f"<File(id={self.id}, name='{self.name}', folder_id={self.folder_id})>"
