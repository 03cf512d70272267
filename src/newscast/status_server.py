"""HTTP surface for submitting briefs and watching job progress.

Routes:
    POST /jobs                 submit a brief
    GET  /jobs                 active jobs, recent jobs and queue status
    GET  /jobs/{job_id}        one job's snapshot
    POST /jobs/{job_id}/cancel cancel a queued or running job
    GET  /jobs/{job_id}/stream server-sent events until the job finishes
    GET  /health               liveness
"""

import asyncio
import json
import logging
from typing import Any, Optional

import pydantic
from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import BriefNotFoundError, ValidationError
from .jobs import Priority
from .service import GenerationService

logger = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("service", GenerationService)
KEEPALIVE_KEY = web.AppKey("keepalive_seconds", float)


class SubmitRequest(BaseModel):
    """Body of POST /jobs."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    brief_id: str = Field(alias="briefId", min_length=1)
    priority: Priority = Priority.NORMAL
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")
    publish_immediately: bool = Field(default=False, alias="publishImmediately")


def _json_error(status: int, message: str, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


def _sse_event(data: dict[str, Any]) -> bytes:
    # Compact JSON keeps each event on one data line
    return f"data: {json.dumps(data, separators=(',', ':'))}\n\n".encode()


async def submit_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    try:
        body = SubmitRequest.model_validate(await request.json())
    except json.JSONDecodeError:
        return _json_error(400, "Invalid JSON")
    except pydantic.ValidationError as e:
        return _json_error(400, "Invalid request", details=e.errors(include_url=False, include_context=False))

    try:
        job = service.submit(
            body.brief_id,
            priority=body.priority,
            webhook_url=body.webhook_url,
            publish_immediately=body.publish_immediately,
        )
    except BriefNotFoundError as e:
        return _json_error(404, str(e))
    except ValidationError as e:
        return _json_error(400, str(e))

    return web.json_response(job.snapshot(), status=202)


async def list_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    return web.json_response({
        "active": service.active_jobs(),
        "recent": service.recent_jobs(),
        "queue": service.queue_status(),
    })


async def status_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    snapshot = service.get_status(request.match_info["job_id"])
    if snapshot is None:
        return _json_error(404, "Job not found")
    return web.json_response(snapshot)


async def cancel_handler(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    job_id = request.match_info["job_id"]
    if service.get_job(job_id) is None:
        return _json_error(404, "Job not found")
    if not service.cancel(job_id):
        return _json_error(409, "Job already finished", job=service.get_status(job_id))
    return web.json_response(service.get_status(job_id))


async def stream_handler(request: web.Request) -> web.StreamResponse:
    """SSE endpoint - pushes job snapshots until the job reaches a terminal state."""
    service = request.app[SERVICE_KEY]
    keepalive = request.app[KEEPALIVE_KEY]
    job = service.get_job(request.match_info["job_id"])
    if job is None:
        return _json_error(404, "Job not found")

    response = web.StreamResponse()
    response.headers["Content-Type"] = "text/event-stream"
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Connection"] = "keep-alive"
    response.headers["X-Accel-Buffering"] = "no"  # Disable nginx buffering
    await response.prepare(request)

    # Subscribe before the first snapshot so no transition falls in between
    subscription = service.bus.subscribe(job.id)
    logger.info(f"Stream opened for job {job.id} ({service.bus.subscriber_count(job.id)} observers)")
    try:
        await response.write(_sse_event(job.snapshot()))
        if job.is_terminal:
            return response

        while True:
            try:
                snapshot = await subscription.get(timeout=keepalive)
            except asyncio.TimeoutError:
                await response.write(b": keepalive\n\n")
                continue
            await response.write(_sse_event(snapshot))
            if snapshot["state"] in ("completed", "failed", "cancelled"):
                break
    except (ConnectionResetError, asyncio.CancelledError):
        pass
    finally:
        subscription.close()
        logger.info(f"Stream closed for job {job.id}")

    return response


async def health_handler(request: web.Request) -> web.Response:
    return web.Response(text="OK")


def create_app(service: GenerationService, keepalive_seconds: float = 30.0) -> web.Application:
    """Build the aiohttp application around a running service."""
    app = web.Application()
    app[SERVICE_KEY] = service
    app[KEEPALIVE_KEY] = keepalive_seconds
    app.router.add_post("/jobs", submit_handler)
    app.router.add_get("/jobs", list_handler)
    app.router.add_get("/jobs/{job_id}", status_handler)
    app.router.add_post("/jobs/{job_id}/cancel", cancel_handler)
    app.router.add_get("/jobs/{job_id}/stream", stream_handler)
    app.router.add_get("/health", health_handler)
    return app
