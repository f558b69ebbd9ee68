from __future__ import annotations

from kubernetes.client import V1Node

from adapters.types import ControlPlaneError, FailureKind

from .context import OperationContext
from .errors import ErrorKind, NodeActionError, invalid_request


def fetch_node(ctx: OperationContext, name: str) -> V1Node:
    """Read the current state of a node. One round trip, no retries."""
    if not name:
        raise invalid_request("node is required")
    ctx.check(f"reading node {name}")
    try:
        return ctx.client.get_node(name, timeout=ctx.call_timeout())
    except ControlPlaneError as exc:
        if exc.kind is FailureKind.NOT_FOUND:
            raise NodeActionError(exc.message, ErrorKind.NOT_FOUND, exc) from exc
        raise NodeActionError(exc.message, ErrorKind.INTERNAL, exc) from exc
