from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import List, Optional

env_path = Path(__file__).parent / ".env"

DEFAULT_ALLOWED_MIME_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/bmp",
    "image/webp",
    "application/pdf",
    "text/plain",
    "text/csv",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
]

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./document_store.db"
    DB_ECHO: bool = False
    DSS_HOST: str = "0.0.0.0"
    DSS_PORT: int = 8000
    STORAGE_BASE_PATH: Path = Path("uploads")
    MAX_UPLOAD_SIZE_BYTES: int = 50 * 1024 * 1024
    ALLOWED_MIME_TYPES: List[str] = DEFAULT_ALLOWED_MIME_TYPES
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100
    MAX_TREE_DEPTH: int = 64
    EVENT_WEBHOOK_URL: Optional[str] = None
    EVENT_QUEUE_SIZE: int = 100
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=env_path, extra='ignore')

settings = Settings()

def get_settings() -> Settings:
    return settings
