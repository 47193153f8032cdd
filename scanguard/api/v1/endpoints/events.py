"""
Server-Sent Events stream of scan and vulnerability changes.
"""
import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from scanguard.core.auth import APIClient, require_role
from scanguard.services.change_feed import change_feed

logger = logging.getLogger(__name__)

router = APIRouter()

HEARTBEAT_SECONDS = 15


def format_sse(event: Dict[str, Any]) -> str:
    return f"event: {event.get('type', 'message').lower()}\ndata: {json.dumps(event, default=str)}\n\n"


@router.get("")
async def stream_changes(
    request: Request,
    client: APIClient = Depends(require_role("viewer")),
):
    """
    Stream row changes as SSE.

    Each event carries invalidation keys (e.g. "scan:<id>") telling the
    client which cached reads to refresh.
    """
    subscriber_queue = await change_feed.subscribe()
    logger.info(f"Change feed subscriber connected ({change_feed.subscriber_count} active)")

    async def event_generator():
        try:
            yield ": connected\n\n"
            while True:
                if await request.is_disconnected():
                    break

                try:
                    event = await asyncio.wait_for(subscriber_queue.get(), timeout=HEARTBEAT_SECONDS)
                    yield format_sse(event)
                except asyncio.TimeoutError:
                    # Heartbeat to keep connection alive behind proxies
                    yield ": heartbeat\n\n"
        finally:
            await change_feed.unsubscribe(subscriber_queue)
            logger.info("Change feed subscriber disconnected")

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=headers)
