from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from events import ProgressBroadcaster, get_event_sink

router = APIRouter(
    prefix="/api/progress",
    tags=["progress"],
)

@router.get("/stream")
async def progress_stream(events: ProgressBroadcaster = Depends(get_event_sink)):
    client_id, queue = events.subscribe()
    return StreamingResponse(
        events.stream(client_id, queue),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
