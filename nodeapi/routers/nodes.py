from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from opentelemetry import trace
from prometheus_client import Counter, Histogram
from pydantic import BaseModel

from ..context import OperationContext, PodRemoval
from ..cordon import cordon, uncordon
from ..decoder import decode_request
from ..drain import drain
from ..errors import NodeActionError, status_for
from ..logging_utils import node_logger
from ..nodes import fetch_node
from ..schemas import DrainPolicy, ErrorBody, NodeActionRequest
from ..settings import Settings
from ..workers import OperationPool

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5

node_action_requests_total = Counter(
    "node_action_requests_total",
    "Node action requests by action and response code",
    ["action", "code"],
)
node_action_latency_seconds = Histogram(
    "node_action_latency_seconds",
    "Node action latency seconds",
    ["action"],
)
drain_pods_removed_total = Counter(
    "drain_pods_removed_total",
    "Pods removed during drains",
    ["method"],
)

Operation = Callable[[OperationContext, NodeActionRequest], BaseModel]


def run_cordon(ctx: OperationContext, req: NodeActionRequest) -> BaseModel:
    return cordon(ctx, fetch_node(ctx, req.node))


def run_uncordon(ctx: OperationContext, req: NodeActionRequest) -> BaseModel:
    return uncordon(ctx, fetch_node(ctx, req.node))


def run_drain(ctx: OperationContext, req: NodeActionRequest) -> BaseModel:
    node = fetch_node(ctx, req.node)
    log = node_logger(ctx.logger, node.metadata.name)

    def on_progress(event: PodRemoval) -> None:
        drain_pods_removed_total.labels(method="eviction" if event.using_eviction else "deletion").inc()
        log.info(
            "evicted %s/%s (eviction=%s)",
            event.namespace,
            event.name,
            str(event.using_eviction).lower(),
        )

    ctx.on_progress = on_progress
    return drain(ctx, node, DrainPolicy.from_request(req))


def drain_budget(req: NodeActionRequest) -> int:
    return DrainPolicy.from_request(req).effective_timeout_seconds


def build_context(request: Request, cancelled: threading.Event) -> OperationContext:
    settings: Settings = request.app.state.settings
    return OperationContext(
        client=request.app.state.node_client,
        logger=logger,
        cancelled=cancelled,
        api_timeout=settings.k8s_request_timeout_seconds,
        poll_interval=settings.drain_poll_interval_seconds,
        eviction_retry_interval=settings.eviction_retry_interval_seconds,
    )


async def _watch_disconnect(request: Request, cancelled: threading.Event) -> None:
    while not cancelled.is_set():
        if await request.is_disconnected():
            logger.info("client disconnected from %s, cancelling", request.url.path)
            cancelled.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def dispatch(
    request: Request,
    action: str,
    operation: Operation,
    budget: Callable[[NodeActionRequest], int] | None = None,
) -> JSONResponse:
    """Decode, run ``operation`` on the operation pool and translate its outcome.

    When ``budget`` is given the deadline starts here, so time spent waiting
    for a free worker counts against it.
    """
    start = time.perf_counter()
    cancelled = threading.Event()
    node = None
    watcher = None
    try:
        req = decode_request(await request.body())
        node = req.node
        ctx = build_context(request, cancelled)
        if budget is not None:
            ctx = ctx.with_deadline(budget(req))
        # the body is fully read, so polling receive() cannot steal it
        watcher = asyncio.create_task(_watch_disconnect(request, cancelled))
        pool: OperationPool = request.app.state.operation_pool
        with tracer.start_as_current_span(f"nodes.{action}") as span:
            span.set_attribute("node", node)
            outcome = await pool.run(ctx, operation, ctx, req)
        response = JSONResponse(outcome.model_dump(), status_code=status.HTTP_200_OK)
    except asyncio.CancelledError:
        cancelled.set()
        raise
    except NodeActionError as exc:
        logger.error("%s failed for node %s (%s): %s", action, node, exc.kind.value, exc.message)
        response = JSONResponse(ErrorBody(error=exc.message).model_dump(), status_code=status_for(exc.kind))
    except Exception as exc:
        logger.exception("%s failed for node %s", action, node)
        response = JSONResponse(
            ErrorBody(error=str(exc)).model_dump(),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    finally:
        if watcher is not None:
            watcher.cancel()

    node_action_requests_total.labels(action=action, code=str(response.status_code)).inc()
    node_action_latency_seconds.labels(action=action).observe(time.perf_counter() - start)
    return response


@router.post("/cordon")
async def cordon_node(request: Request) -> JSONResponse:
    return await dispatch(request, "cordon", run_cordon)


@router.post("/uncordon")
async def uncordon_node(request: Request) -> JSONResponse:
    return await dispatch(request, "uncordon", run_uncordon)


@router.post("/drain")
async def drain_node(request: Request) -> JSONResponse:
    return await dispatch(request, "drain", run_drain, budget=drain_budget)
