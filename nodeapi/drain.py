"""Drain orchestration: cordon, classify pods, evict or delete, wait for them to go.

Pod classification follows ``kubectl drain``: DaemonSet pods and mirror pods
stay, pods with emptyDir data or without a controller are only removed when
the policy allows it, and a single refused pod fails the whole drain before
anything is removed.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from kubernetes.client import V1Node, V1OwnerReference, V1Pod

from adapters.types import ControlPlaneError, FailureKind

from .context import OperationContext
from .cordon import set_unschedulable
from .errors import ErrorKind, NodeActionError
from .logging_utils import NodeLogAdapter, node_logger
from .schemas import DrainOutcome, DrainPolicy

MIRROR_ANNOTATION = "kubernetes.io/config.mirror"
FINISHED_PHASES = ("Succeeded", "Failed")

DAEMON_SET_FATAL = "cannot delete DaemonSet-managed Pods (use ignoreDaemonSets to ignore)"
DAEMON_SET_WARNING = "ignoring DaemonSet-managed Pods"
DAEMON_SET_ORPHAN_FATAL = "cannot delete Pods whose DaemonSet no longer exists (use force to override)"
DAEMON_SET_ORPHAN_WARNING = "deleting Pods whose DaemonSet no longer exists"
LOCAL_STORAGE_FATAL = "cannot delete Pods with local storage (use deleteEmptyDirData to override)"
LOCAL_STORAGE_WARNING = "deleting Pods with local storage"
UNMANAGED_FATAL = "cannot delete Pods that declare no controller (use force to override)"
UNMANAGED_WARNING = "deleting Pods that declare no controller"


def pod_key(pod: V1Pod) -> str:
    return f"{pod.metadata.namespace}/{pod.metadata.name}"


def controller_of(pod: V1Pod) -> V1OwnerReference | None:
    for owner in pod.metadata.owner_references or []:
        if owner.controller:
            return owner
    return None


def is_finished(pod: V1Pod) -> bool:
    return pod.status is not None and pod.status.phase in FINISHED_PHASES


def has_local_storage(pod: V1Pod) -> bool:
    volumes = pod.spec.volumes if pod.spec is not None else None
    return any(v.empty_dir is not None for v in volumes or [])


def is_mirror(pod: V1Pod) -> bool:
    return bool(pod.metadata.annotations) and MIRROR_ANNOTATION in pod.metadata.annotations


@dataclass
class DeletionPlan:
    pods: list[V1Pod] = field(default_factory=list)
    warnings: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
    errors: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))

    def error_message(self) -> str:
        return "; ".join(f"{reason}: {', '.join(pods)}" for reason, pods in self.errors.items())


def plan_deletions(ctx: OperationContext, pods: list[V1Pod], policy: DrainPolicy) -> DeletionPlan:
    plan = DeletionPlan()
    for pod in pods:
        key = pod_key(pod)
        controller = controller_of(pod)

        if controller is not None and controller.kind == "DaemonSet":
            doing = f"looking up DaemonSet {pod.metadata.namespace}/{controller.name}"
            ctx.check(doing)
            try:
                exists = ctx.client.daemon_set_exists(
                    pod.metadata.namespace, controller.name, timeout=ctx.call_timeout()
                )
            except ControlPlaneError as exc:
                raise ctx.fail(doing, exc) from exc
            if not exists:
                if policy.force:
                    plan.warnings[DAEMON_SET_ORPHAN_WARNING].append(key)
                    plan.pods.append(pod)
                else:
                    plan.errors[DAEMON_SET_ORPHAN_FATAL].append(key)
            elif policy.ignore_daemon_sets:
                plan.warnings[DAEMON_SET_WARNING].append(key)
            else:
                plan.errors[DAEMON_SET_FATAL].append(key)
            continue

        if is_mirror(pod):
            continue

        finished = is_finished(pod)
        if has_local_storage(pod) and not finished:
            if not policy.delete_empty_dir_data:
                plan.errors[LOCAL_STORAGE_FATAL].append(key)
                continue
            plan.warnings[LOCAL_STORAGE_WARNING].append(key)

        if controller is None and not finished:
            if not policy.force:
                plan.errors[UNMANAGED_FATAL].append(key)
                continue
            plan.warnings[UNMANAGED_WARNING].append(key)

        plan.pods.append(pod)
    return plan


def _remove_pod(
    ctx: OperationContext,
    pod: V1Pod,
    use_eviction: bool,
    grace_period: int | None,
    log: NodeLogAdapter,
) -> bool:
    """Evict (or delete) one pod. Returns False when the pod was already gone."""
    key = pod_key(pod)
    doing = f"evicting pod {key}" if use_eviction else f"deleting pod {key}"
    while True:
        ctx.check(doing)
        try:
            if use_eviction:
                ctx.client.evict_pod(pod, grace_period, timeout=ctx.call_timeout())
            else:
                ctx.client.delete_pod(pod, grace_period, timeout=ctx.call_timeout())
            return True
        except ControlPlaneError as exc:
            if exc.kind is FailureKind.NOT_FOUND:
                return False
            if use_eviction and exc.kind is FailureKind.TOO_MANY_REQUESTS:
                log.info(
                    "cannot evict pod %s as it would violate its disruption budget, retrying in %ss",
                    key,
                    ctx.eviction_retry_interval,
                )
                ctx.pause(ctx.eviction_retry_interval)
                continue
            raise ctx.fail(doing, exc) from exc


def _wait_for_delete(ctx: OperationContext, pods: list[V1Pod], use_eviction: bool) -> None:
    """Poll until every pod is gone, reporting each one as it disappears."""
    pending = list(pods)
    while pending:
        remaining = []
        for pod in pending:
            doing = f"waiting for pod {pod_key(pod)} to be deleted"
            ctx.check(doing)
            try:
                current = ctx.client.get_pod(
                    pod.metadata.namespace, pod.metadata.name, timeout=ctx.call_timeout()
                )
            except ControlPlaneError as exc:
                if exc.kind is not FailureKind.NOT_FOUND:
                    raise ctx.fail(doing, exc) from exc
                current = None
            # a pod recreated under the same name is a different pod
            if current is None or current.metadata.uid != pod.metadata.uid:
                ctx.report(pod.metadata.namespace, pod.metadata.name, use_eviction)
                continue
            remaining.append(pod)
        pending = remaining
        if pending:
            ctx.pause(ctx.poll_interval)


def _evacuate(ctx: OperationContext, name: str, policy: DrainPolicy, log: NodeLogAdapter) -> int:
    ctx.check("listing pods")
    try:
        pods = ctx.client.list_pods_on_node(name, timeout=ctx.call_timeout())
    except ControlPlaneError as exc:
        raise ctx.fail("listing pods", exc) from exc

    plan = plan_deletions(ctx, pods, policy)
    for reason, keys in plan.warnings.items():
        log.warning("%s: %s", reason, ", ".join(keys))
    if plan.errors:
        raise NodeActionError(plan.error_message(), ErrorKind.INTERNAL)
    if not plan.pods:
        return 0

    ctx.check("checking eviction support")
    try:
        use_eviction = ctx.client.supports_eviction(timeout=ctx.call_timeout())
    except ControlPlaneError as exc:
        raise ctx.fail("checking eviction support", exc) from exc

    grace_period = policy.effective_grace_period
    accepted = [pod for pod in plan.pods if _remove_pod(ctx, pod, use_eviction, grace_period, log)]
    _wait_for_delete(ctx, accepted, use_eviction)
    return len(accepted)


def drain(ctx: OperationContext, node: V1Node, policy: DrainPolicy) -> DrainOutcome:
    """Cordon ``node`` and remove every evictable pod within the policy's timeout."""
    name = node.metadata.name
    timeout = policy.effective_timeout_seconds
    ctx = ctx.with_deadline(timeout)
    log = node_logger(ctx.logger, name)

    # always cordon first, even when a previous drain already did
    try:
        if set_unschedulable(ctx, node, True):
            log.info("cordoned node")
    except NodeActionError as exc:
        kind = exc.kind if exc.kind is ErrorKind.DEADLINE_EXCEEDED else ErrorKind.INTERNAL
        raise NodeActionError(f"cordon before drain: {exc.message}", kind, exc) from exc

    try:
        removed = _evacuate(ctx, name, policy, log)
    except NodeActionError as exc:
        raise exc.wrap(f"drain node {name}") from exc

    log.info("drained node, removed %d pods", removed)
    return DrainOutcome(
        node=name,
        force=policy.force,
        ignoreDaemonSets=policy.ignore_daemon_sets,
        deleteEmptyDirData=policy.delete_empty_dir_data,
        timeoutSeconds=timeout,
    )
