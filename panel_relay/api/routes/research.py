from __future__ import annotations

import asyncio
import json as _json

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from panel_relay.models.schemas import ResearchRequest
from panel_relay.services import logger as log_service
from panel_relay.services import streaming, upstream
from panel_relay.services.messages import latest_user_query, to_upstream_messages
from panel_relay.services.pipeline import ResearchStreamPipeline
from panel_relay.services.sink import QueueSink

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("")
async def stream_research(request: ResearchRequest):
    """Run one research request upstream and relay its events over SSE."""
    query = latest_user_query(request.messages)
    if query is None or not query.strip():
        raise HTTPException(status_code=400, detail="No research query found")

    upstream_messages = to_upstream_messages(request.messages)
    sink = QueueSink()
    pipeline = ResearchStreamPipeline(query, sink)

    async def run_pipeline() -> None:
        log_service.log_event(
            event_type="research_started",
            message="Research started",
            query=query[:100],
            input_messages=len(upstream_messages),
        )
        try:
            await pipeline.run(upstream.stream_run(query, upstream_messages))
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
            )
            await sink.write(
                streaming.error("Research stream failed unexpectedly.", e.__class__.__name__)
            )
        await sink.close()

    async def event_generator():
        task = asyncio.create_task(run_pipeline())
        try:
            async for event in sink.events():
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.to_record()),
                }
        finally:
            if not task.done():
                task.cancel()

    return EventSourceResponse(event_generator())
