from __future__ import annotations

from kubernetes.client import V1Node

from adapters.types import ControlPlaneError, FailureKind

from .context import OperationContext
from .errors import ErrorKind, NodeActionError
from .logging_utils import node_logger
from .schemas import ActionOutcome


def is_unschedulable(node: V1Node) -> bool:
    return bool(node.spec is not None and node.spec.unschedulable)


def set_unschedulable(ctx: OperationContext, node: V1Node, desired: bool) -> bool:
    """Patch ``spec.unschedulable`` unless the node already has the desired value.

    The patch carries the resourceVersion read in this request, so a node
    modified in between is rejected with a conflict instead of overwritten.
    Returns True when a patch was issued.
    """
    if is_unschedulable(node) == desired:
        return False

    name = node.metadata.name
    verb = "cordon" if desired else "uncordon"
    patch: dict = {"spec": {"unschedulable": desired}}
    if node.metadata.resource_version:
        patch["metadata"] = {"resourceVersion": node.metadata.resource_version}

    ctx.check(f"patching node {name}")
    try:
        ctx.client.patch_node(node, patch, timeout=ctx.call_timeout())
    except ControlPlaneError as exc:
        kind = ErrorKind.CONFLICT if exc.kind is FailureKind.CONFLICT else ErrorKind.INTERNAL
        raise NodeActionError(f"{verb} node {name}: {exc.message}", kind, exc) from exc

    if node.spec is not None:
        node.spec.unschedulable = desired
    return True


def cordon(ctx: OperationContext, node: V1Node) -> ActionOutcome:
    name = node.metadata.name
    if not set_unschedulable(ctx, node, True):
        return ActionOutcome(node=name, status="already cordoned")
    node_logger(ctx.logger, name).info("cordoned node")
    return ActionOutcome(node=name, status="cordoned")


def uncordon(ctx: OperationContext, node: V1Node) -> ActionOutcome:
    name = node.metadata.name
    if not set_unschedulable(ctx, node, False):
        return ActionOutcome(node=name, status="already schedulable")
    node_logger(ctx.logger, name).info("uncordoned node")
    return ActionOutcome(node=name, status="uncordoned")
