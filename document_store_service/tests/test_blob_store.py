import io

import pytest

from blob_store import BlobStore
from exceptions import InvalidArgument, NotFound, StorageFailure

class AsyncBytesReader:
    """Minimal stand-in for an UploadFile: ``async read(n)`` over in-memory bytes."""

    def __init__(self, content: bytes):
        self._buffer = io.BytesIO(content)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

@pytest.mark.asyncio
async def test_put_and_read_back(blob_store: BlobStore):
    token = await blob_store.put(b"hello blob", ".TXT")

    assert token.endswith(".txt")
    assert len(token) == 32 + len(".txt")
    assert await blob_store.exists(token)

    chunks = [chunk async for chunk in await blob_store.open_read_stream(token)]
    assert b"".join(chunks) == b"hello blob"

@pytest.mark.asyncio
async def test_tokens_are_never_reused(blob_store: BlobStore):
    first = await blob_store.put(b"a", ".txt")
    second = await blob_store.put(b"a", ".txt")
    assert first != second

@pytest.mark.asyncio
async def test_put_stream_reports_progress(blob_store: BlobStore):
    seen = []
    token, size = await blob_store.put_stream(AsyncBytesReader(b"x" * 100), ".bin", max_size=1024, on_chunk=seen.append)

    assert size == 100
    assert seen == [100]
    assert (blob_store.base_path / token).read_bytes() == b"x" * 100

@pytest.mark.asyncio
async def test_put_stream_over_cap_leaves_no_blob(blob_store: BlobStore):
    with pytest.raises(InvalidArgument) as exc_info:
        await blob_store.put_stream(AsyncBytesReader(b"x" * 2048), ".bin", max_size=1024)

    assert exc_info.value.message == "File size too large"
    assert list(blob_store.base_path.iterdir()) == []

@pytest.mark.asyncio
async def test_delete_is_idempotent(blob_store: BlobStore):
    token = await blob_store.put(b"bye", ".txt")

    await blob_store.delete(token)
    await blob_store.delete(token)

    assert not await blob_store.exists(token)

@pytest.mark.asyncio
async def test_discard_never_raises(blob_store: BlobStore):
    assert await blob_store.discard("missing.txt") is True
    assert await blob_store.discard("../escape.txt") is False

def test_path_for_rejects_traversal(blob_store: BlobStore):
    for token in ["", "../etc/passwd", "a/b.txt", "a\\b.txt"]:
        with pytest.raises(InvalidArgument):
            blob_store.path_for(token)

@pytest.mark.asyncio
async def test_open_missing_blob(blob_store: BlobStore):
    with pytest.raises(NotFound) as exc_info:
        await blob_store.open_read_stream("0123456789abcdef.pdf")
    assert exc_info.value.message == "File not found on disk"

def test_ensure_ready_creates_directory(tmp_path):
    store = BlobStore(tmp_path / "nested" / "blobs")
    store.ensure_ready()
    assert store.base_path.is_dir()

@pytest.mark.asyncio
async def test_writes_do_not_create_the_directory(tmp_path):
    store = BlobStore(tmp_path / "not_created_yet")

    with pytest.raises(StorageFailure):
        await store.put_stream(AsyncBytesReader(b"data"), ".txt")

    assert not store.base_path.exists()
