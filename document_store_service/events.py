import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Set

import httpx
from fastapi.encoders import jsonable_encoder

from config import settings
from logging_config import get_logger

logger = get_logger(__name__)

class ProgressBroadcaster:
    """Fire-and-forget event sink.

    Events fan out to every Server-Sent-Events subscriber through a bounded
    queue (a full queue drops the event for that subscriber) and, when a
    webhook URL is configured, are POSTed there in a background task.
    ``publish`` never blocks and never raises.
    """

    def __init__(self, queue_size: int = 100, webhook_url: Optional[str] = None):
        self.queue_size = queue_size
        self.webhook_url = webhook_url
        self._subscribers: Dict[str, asyncio.Queue] = {}
        self._pending: Set[asyncio.Task] = set()
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> tuple:
        client_id = uuid.uuid4().hex
        queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[client_id] = queue
        logger.info(f"Progress subscriber {client_id} connected ({len(self._subscribers)} total)")
        return client_id, queue

    def unsubscribe(self, client_id: str) -> None:
        if self._subscribers.pop(client_id, None) is not None:
            logger.info(f"Progress subscriber {client_id} disconnected")

    def publish(self, event: Dict[str, Any]) -> None:
        payload = jsonable_encoder(event, by_alias=True)
        for client_id, queue in list(self._subscribers.items()):
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.debug(f"Dropping '{payload.get('type')}' event for slow subscriber {client_id}")

        if self.webhook_url:
            try:
                task = asyncio.get_running_loop().create_task(self._forward(payload))
            except RuntimeError:
                logger.warning("No running event loop; webhook delivery skipped")
                return
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _forward(self, payload: Dict[str, Any]) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient()
        try:
            response = await self._client.post(self.webhook_url, json=payload)
            response.raise_for_status()
            logger.debug(f"Delivered '{payload.get('type')}' event to {self.webhook_url}")
        except httpx.HTTPStatusError as e:
            logger.error(f"Event webhook rejected '{payload.get('type')}'. Status: {e.response.status_code}, Response: {e.response.text}")
        except httpx.RequestError as e:
            logger.error(f"Event webhook request failed for '{payload.get('type')}': {str(e)}")

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def stream(self, client_id: str, queue: asyncio.Queue) -> AsyncIterator[str]:
        """Render a subscription as an SSE body; ends when the client goes away."""
        try:
            yield format_sse({"type": "connected", "clientId": client_id})
            while True:
                event = await queue.get()
                yield format_sse(event)
        finally:
            self.unsubscribe(client_id)

def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"

event_sink = ProgressBroadcaster(
    queue_size=settings.EVENT_QUEUE_SIZE,
    webhook_url=settings.EVENT_WEBHOOK_URL,
)

def get_event_sink() -> ProgressBroadcaster:
    return event_sink
