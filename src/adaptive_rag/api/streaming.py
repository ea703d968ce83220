"""Server-Sent Events transport for stream events."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

from fastapi.responses import StreamingResponse

from adaptive_rag.exceptions import AdaptiveRAGError
from adaptive_rag.models.events import SSE_DONE, ErrorData, ErrorEvent, to_sse
from adaptive_rag.observability.logger import get_logger

logger = get_logger("sse")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def sse_lines(events: AsyncIterator) -> AsyncIterator[str]:
    """Serialize events as ``data: {json}`` frames, terminated by ``data: [DONE]``."""
    try:
        async with aclosing(events) as stream:
            async for event in stream:
                yield to_sse(event)
    except AdaptiveRAGError as e:
        logger.error("stream_failed", error=str(e))
        yield to_sse(ErrorEvent(data=ErrorData(message=str(e))))
    yield SSE_DONE


def sse_response(events: AsyncIterator) -> StreamingResponse:
    return StreamingResponse(
        sse_lines(events), media_type="text/event-stream", headers=SSE_HEADERS
    )
