from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from kubernetes.client import V1Node
from starlette.exceptions import HTTPException as StarletteHTTPException

from adapters.base import NodeClient
from adapters.k8s import auth
from adapters.k8s.adapter import KubeNodeClient
from adapters.k8s.mock import FakeNodeClient, make_node

from . import otel
from .logging_utils import configure_logging
from .routers import health, nodes
from .schemas import ErrorBody
from .settings import Settings
from .workers import OperationPool

logger = logging.getLogger(__name__)


def build_node_client(settings: Settings) -> NodeClient:
    if settings.k8s_mode == "mock":
        seeded: list[V1Node] = [make_node(name) for name in settings.k8s_mock_nodes]
        logger.warning("using in-memory mock cluster with nodes %s", settings.k8s_mock_nodes)
        return FakeNodeClient(nodes=seeded)
    core_v1, apps_v1 = auth.get_client(
        mode=settings.k8s_mode,
        kubeconfig=settings.k8s_kubeconfig,
        context=settings.k8s_context,
        host=settings.k8s_host,
        token=settings.k8s_sa_token,
        ca_crt=settings.k8s_sa_ca_crt,
    )
    return KubeNodeClient(core_v1, apps_v1)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        ErrorBody(error=str(exc.detail)).model_dump(),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def create_app(settings: Settings | None = None, node_client: NodeClient | None = None) -> FastAPI:
    """Build the API. The control-plane client is created at startup unless given.

    Also the target for ``uvicorn nodeapi.main:create_app --factory``.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.node_client = node_client or build_node_client(settings)
        app.state.operation_pool = OperationPool(settings.max_concurrent_operations)
        logger.info("node lifecycle API ready (k8s mode %s)", settings.k8s_mode)
        yield
        logger.info("node lifecycle API shutting down")

    app = FastAPI(title="Node Lifecycle API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    otel.instrument(app, settings)

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.include_router(health.router)
    app.include_router(nodes.router)
    return app
