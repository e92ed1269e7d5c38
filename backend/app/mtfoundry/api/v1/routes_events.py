"""MTFoundry - Event Stream Routes

生成/执行快照的 SSE 推送
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import StreamingResponse

from mtfoundry.services.event_service import get_event_broker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

KEEPALIVE_SECONDS = 15.0


@router.get("/events/recent")
def recent_events(
    prefix: Optional[str] = Query(None, description="事件类型前缀，如 execution."),
    last_event_id: Optional[str] = Query(None),
):
    """获取缓存的最近事件"""
    events = get_event_broker().get_events(last_event_id=last_event_id, prefix=prefix)
    return [
        {"id": str(e.id), "event_type": e.event_type, "data": e.data, "ts": e.ts.isoformat()}
        for e in events
    ]


@router.get("/events")
async def stream_events(
    request: Request,
    prefix: Optional[str] = Query(None),
    last_event_id: Optional[str] = Header(None, alias="Last-Event-ID"),
):
    """SSE 事件流；支持 Last-Event-ID 补发"""
    broker = get_event_broker()

    async def event_generator():
        queue = broker.subscribe()
        try:
            if last_event_id:
                for event in broker.get_events(last_event_id=last_event_id, prefix=prefix):
                    yield event.to_sse()
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if prefix and not event.event_type.startswith(prefix):
                    continue
                yield event.to_sse()
        finally:
            broker.unsubscribe(queue)
            logger.info("SSE client disconnected")

    return StreamingResponse(event_generator(), media_type="text/event-stream")
