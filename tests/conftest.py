from __future__ import annotations

import logging
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from adapters.k8s.mock import FakeNodeClient, make_node
from nodeapi.context import OperationContext
from nodeapi.main import create_app
from nodeapi.settings import Settings


@pytest.fixture
def fake() -> FakeNodeClient:
    return FakeNodeClient(
        nodes=[
            make_node("node-a"),
            make_node("node-b", unschedulable=True),
        ]
    )


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def ctx(fake: FakeNodeClient, events: list) -> OperationContext:
    return OperationContext(
        client=fake,
        logger=logging.getLogger("tests.operations"),
        on_progress=events.append,
        api_timeout=5.0,
        poll_interval=0.01,
        eviction_retry_interval=0.01,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        k8s_mode="mock",
        drain_poll_interval_seconds=0.01,
        eviction_retry_interval_seconds=0.01,
        otel_exporter_otlp_endpoint=None,
    )


@pytest.fixture
def client(settings: Settings, fake: FakeNodeClient) -> Generator[TestClient, None, None]:
    with TestClient(create_app(settings, node_client=fake)) as test_client:
        yield test_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
