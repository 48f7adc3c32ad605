import uuid
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

import aiofiles
import aiofiles.os

from config import settings
from exceptions import InvalidArgument, NotFound, StorageFailure
from logging_config import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024

class BlobStore:
    """Upload bytes kept as flat files under one directory, addressed by token.

    A token is ``<uuid4 hex><extension>``; it is the ``filename`` column of
    a File and is never reused.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)

    def ensure_ready(self) -> None:
        """Create the blob directory. Run once at startup; writes assume it exists."""
        if not self.base_path.exists():
            logger.info(f"Creating blob storage directory at {self.base_path}")
            self.base_path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def new_token(extension: str = "") -> str:
        return f"{uuid.uuid4().hex}{extension.lower()}"

    def path_for(self, token: str) -> Path:
        if not token or ".." in token or "/" in token or "\\" in token:
            raise InvalidArgument(f"Invalid blob token: {token!r}")
        return self.base_path / token

    async def put(self, content: bytes, extension: str = "") -> str:
        token = self.new_token(extension)
        try:
            async with aiofiles.open(self.path_for(token), 'wb') as out_file:
                await out_file.write(content)
        except OSError as e:
            logger.exception(f"Error writing blob {token}")
            raise StorageFailure(f"Error saving file: {e}") from e
        return token

    async def put_stream(
        self,
        source,
        extension: str = "",
        max_size: Optional[int] = None,
        on_chunk: Optional[Callable[[int], None]] = None
    ) -> tuple:
        """Copy ``source`` (anything with ``async read(n)``) into a new blob.

        Returns ``(token, size)``. A partially written blob is removed when
        the size cap is hit or the write fails.
        """
        token = self.new_token(extension)
        blob_path = self.path_for(token)
        received = 0
        try:
            async with aiofiles.open(blob_path, 'wb') as out_file:
                while chunk := await source.read(CHUNK_SIZE):
                    received += len(chunk)
                    if max_size is not None and received > max_size:
                        raise InvalidArgument("File size too large")
                    await out_file.write(chunk)
                    if on_chunk is not None:
                        on_chunk(received)
        except InvalidArgument:
            await self.discard(token)
            raise
        except OSError as e:
            logger.exception(f"Error streaming blob {token} to {blob_path}")
            await self.discard(token)
            raise StorageFailure(f"Error saving file: {e}") from e
        logger.debug(f"Stored blob {token} ({received} bytes)")
        return token, received

    async def exists(self, token: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(token))

    async def delete(self, token: str) -> None:
        try:
            await aiofiles.os.remove(self.path_for(token))
        except FileNotFoundError:
            logger.debug(f"Blob {token} already absent")
        except OSError as e:
            raise StorageFailure(f"Error deleting file: {e}") from e

    async def discard(self, token: str) -> bool:
        """Best-effort delete for compensating cleanup: logged, never raised, not retried."""
        try:
            await self.delete(token)
            return True
        except (StorageFailure, InvalidArgument):
            logger.exception(f"Failed to remove blob {token}; it is now orphaned")
            return False

    async def open_read_stream(self, token: str) -> AsyncIterator[bytes]:
        if not await self.exists(token):
            raise NotFound("File not found on disk")
        return self._iter_chunks(self.path_for(token))

    async def _iter_chunks(self, blob_path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(blob_path, 'rb') as in_file:
            while chunk := await in_file.read(CHUNK_SIZE):
                yield chunk

def get_blob_store() -> BlobStore:
    return BlobStore(settings.STORAGE_BASE_PATH)
