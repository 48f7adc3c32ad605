"""Incremental reader for ``multipart/form-data`` request bodies.

Parts are handed out as they arrive on the wire, so a file part can be
copied to the blob store chunk by chunk while the client is still
sending it. A part must be consumed (or is drained) before the next one
is produced.
"""
from collections import deque
from typing import AsyncIterator, Dict, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from exceptions import InvalidArgument
from logging_config import get_logger

logger = get_logger(__name__)

class StreamedPart:
    def __init__(self, reader: "MultipartStream", headers: Dict[bytes, bytes]):
        self._reader = reader
        self._done = False
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        self.name = options.get(b"name", b"").decode("utf-8")
        filename = options.get(b"filename")
        self.filename: Optional[str] = filename.decode("utf-8") if filename is not None else None
        content_type = headers.get(b"content-type")
        self.content_type: Optional[str] = content_type.decode("latin-1") if content_type else None

    async def read(self, size: int = -1) -> bytes:
        """Next chunk of this part as it arrived; ``b""`` once the part is over."""
        while not self._done:
            event = await self._reader._next_event()
            if event is None or event[0] != "data":
                self._done = True
                break
            if event[1]:
                return event[1]
        return b""

    async def text(self) -> str:
        chunks = []
        while chunk := await self.read():
            chunks.append(chunk)
        return b"".join(chunks).decode("utf-8")

    async def drain(self) -> None:
        while await self.read():
            pass

class MultipartStream:
    def __init__(self, content_type: Optional[str], body: AsyncIterator[bytes]):
        mime, params = parse_options_header(content_type or "")
        boundary = params.get(b"boundary")
        if mime != b"multipart/form-data" or not boundary:
            raise InvalidArgument("Expected a multipart/form-data body")

        self._body = body.__aiter__()
        self._events = deque()
        self._exhausted = False
        self._header_field = b""
        self._header_value = b""
        self._headers: Dict[bytes, bytes] = {}
        self._parser = MultipartParser(boundary, callbacks={
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
        })

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        self._events.append(("part", self._headers))
        self._headers = {}

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", bytes(data[start:end])))

    def _on_part_end(self) -> None:
        self._events.append(("end", None))

    async def _next_event(self):
        while not self._events:
            if self._exhausted:
                return None
            try:
                chunk = await self._body.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                self._parser.finalize()
                continue
            if not chunk:
                continue
            try:
                self._parser.write(chunk)
            except MultipartParseError as e:
                logger.warning(f"Malformed multipart body: {e}")
                raise InvalidArgument("Malformed multipart body") from e
        return self._events.popleft()

    async def parts(self) -> AsyncIterator[StreamedPart]:
        while True:
            event = await self._next_event()
            if event is None:
                return
            if event[0] != "part":
                continue
            part = StreamedPart(self, event[1])
            yield part
            await part.drain()
