"""HTTP client for the upstream interview-panel research service."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import httpx

from panel_relay.config import settings
from panel_relay.services import logger as log_service

STREAM_MODES = ["updates", "messages", "custom"]


class UpstreamError(RuntimeError):
    """The upstream service rejected or failed a research run."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def build_headers() -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if settings.upstream_api_key:
        headers["x-api-key"] = settings.upstream_api_key
    return headers


def build_run_request(
    topic: str,
    messages: list[dict[str, Any]],
    thread_id: str,
) -> dict[str, Any]:
    return {
        "assistant_id": settings.upstream_assistant_id,
        "input": {
            "messages": messages,
            "topic": topic,
        },
        "stream_mode": list(STREAM_MODES),
        "stream_subgraphs": True,
        "config": {
            "configurable": {
                "thread_id": thread_id,
                "checkpoint_ns": "",
                "analyst_model": settings.analyst_model,
                "max_analysts": settings.max_analysts,
                "max_concurrent_interviews": settings.max_concurrent_interviews,
                "max_num_turns": settings.max_num_turns,
            },
            "recursion_limit": settings.recursion_limit,
            "run_name": f"research_{datetime.now(timezone.utc).isoformat()}",
        },
        "if_not_exists": "create",
    }


async def create_thread(client: httpx.AsyncClient, thread_id: str) -> str:
    """Create an upstream thread, falling back to ``thread_id`` on any failure.

    The run request uses ``if_not_exists: create``, so a failed thread
    creation is never fatal.
    """
    url = f"{settings.upstream_base_url}/threads"
    try:
        response = await client.post(url, json={}, headers=build_headers())
    except httpx.HTTPError as exc:
        log_service.log_upstream_request(url, thread_id, "thread_error", error=str(exc))
        return thread_id

    if response.status_code == 409:
        log_service.log_upstream_request(url, thread_id, "thread_exists", status_code=409)
        return thread_id
    if not response.is_success:
        log_service.log_upstream_request(
            url,
            thread_id,
            "thread_error",
            status_code=response.status_code,
            error=response.text[:500],
        )
        return thread_id

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    created = payload.get("thread_id") if isinstance(payload, dict) else None
    return created or thread_id


async def stream_run(
    topic: str,
    messages: list[dict[str, Any]],
    *,
    client: httpx.AsyncClient | None = None,
) -> AsyncIterator[bytes]:
    """Start a research run and yield the raw response body as it arrives.

    Raises ``UpstreamError`` for a non-2xx response; transport failures
    surface as ``httpx.HTTPError``. No retry is attempted.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(settings.stream_timeout_seconds, connect=30.0))

    try:
        thread_id = await create_thread(client, str(uuid.uuid4()))
        url = f"{settings.upstream_base_url}/threads/{thread_id}/runs/stream"
        body = build_run_request(topic, messages, thread_id)
        log_service.log_upstream_request(
            url,
            thread_id,
            "started",
            assistant_id=settings.upstream_assistant_id,
            input_messages=len(messages),
            topic=topic[:100],
        )

        async with client.stream("POST", url, json=body, headers=build_headers()) as response:
            if not response.is_success:
                error_text = (await response.aread()).decode("utf-8", errors="replace")
                log_service.log_upstream_request(
                    url,
                    thread_id,
                    "failed",
                    status_code=response.status_code,
                    error=error_text[:500],
                )
                raise UpstreamError(
                    f"Failed to start research: {response.status_code} "
                    f"{response.reason_phrase} - {error_text}",
                    status_code=response.status_code,
                    body=error_text,
                )

            async for chunk in response.aiter_bytes():
                yield chunk
    finally:
        if owns_client:
            await client.aclose()
