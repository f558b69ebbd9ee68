from __future__ import annotations

import copy
import uuid
from typing import Any, Iterable

from kubernetes import client
from kubernetes.client import V1Node, V1Pod

from ..types import ControlPlaneError, FailureKind

MIRROR_ANNOTATION = "kubernetes.io/config.mirror"

PodKey = tuple[str, str]


def make_node(name: str, unschedulable: bool = False, resource_version: str = "1") -> V1Node:
    return client.V1Node(
        metadata=client.V1ObjectMeta(name=name, resource_version=resource_version),
        spec=client.V1NodeSpec(unschedulable=unschedulable),
    )


def make_pod(
    name: str,
    namespace: str = "default",
    node: str = "node-a",
    owner_kind: str | None = "ReplicaSet",
    owner_name: str | None = None,
    empty_dir: bool = False,
    phase: str = "Running",
    mirror: bool = False,
) -> V1Pod:
    owners = None
    if owner_kind:
        owners = [
            client.V1OwnerReference(
                api_version="apps/v1",
                kind=owner_kind,
                name=owner_name or f"{name}-owner",
                uid=str(uuid.uuid4()),
                controller=True,
            )
        ]
    volumes = None
    if empty_dir:
        volumes = [client.V1Volume(name="scratch", empty_dir=client.V1EmptyDirVolumeSource())]
    return client.V1Pod(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            uid=str(uuid.uuid4()),
            owner_references=owners,
            annotations={MIRROR_ANNOTATION: "mirror"} if mirror else None,
        ),
        spec=client.V1PodSpec(
            node_name=node,
            containers=[client.V1Container(name="main", image="busybox")],
            volumes=volumes,
        ),
        status=client.V1PodStatus(phase=phase),
    )


def _not_found(resource: str, name: str) -> ControlPlaneError:
    return ControlPlaneError(f'{resource} "{name}" not found', FailureKind.NOT_FOUND, 404)


class FakeNodeClient:
    """In-memory NodeClient for tests and ``K8S_MODE=mock``.

    Objects are copied on the way in and out so callers see API-server-like
    snapshots. ``blocked`` pods refuse eviction with 429, ``lingering`` pods
    accept removal but never go away, and ``failures`` maps a method name to
    the error it raises.
    """

    def __init__(
        self,
        nodes: Iterable[V1Node] = (),
        pods: Iterable[V1Pod] = (),
        daemon_sets: Iterable[PodKey] = (),
        eviction_supported: bool = True,
    ):
        self.nodes: dict[str, V1Node] = {n.metadata.name: copy.deepcopy(n) for n in nodes}
        self.pods: dict[PodKey, V1Pod] = {}
        for pod in pods:
            self.add_pod(pod)
        self.daemon_sets: set[PodKey] = set(daemon_sets)
        self.eviction_supported = eviction_supported
        self.blocked: set[PodKey] = set()
        self.lingering: set[PodKey] = set()
        self.failures: dict[str, ControlPlaneError] = {}
        self.calls: list[tuple[Any, ...]] = []

    def add_pod(self, pod: V1Pod) -> None:
        self.pods[(pod.metadata.namespace, pod.metadata.name)] = copy.deepcopy(pod)

    @property
    def mutations(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] in ("patch_node", "evict_pod", "delete_pod")]

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]

    def get_node(self, name: str, timeout: float | None = None) -> V1Node:
        self._record("get_node", name)
        if name not in self.nodes:
            raise _not_found("nodes", name)
        return copy.deepcopy(self.nodes[name])

    def patch_node(self, node: V1Node, patch: dict[str, Any], timeout: float | None = None) -> V1Node:
        name = node.metadata.name
        self._record("patch_node", name, patch)
        stored = self.nodes.get(name)
        if stored is None:
            raise _not_found("nodes", name)
        expected = patch.get("metadata", {}).get("resourceVersion")
        if expected is not None and expected != stored.metadata.resource_version:
            raise ControlPlaneError(
                f'Operation cannot be fulfilled on nodes "{name}": the object has been modified; '
                "please apply your changes to the latest version and try again",
                FailureKind.CONFLICT,
                409,
            )
        if "unschedulable" in patch.get("spec", {}):
            stored.spec.unschedulable = patch["spec"]["unschedulable"]
        stored.metadata.resource_version = str(int(stored.metadata.resource_version or "0") + 1)
        return copy.deepcopy(stored)

    def list_pods_on_node(self, name: str, timeout: float | None = None) -> list[V1Pod]:
        self._record("list_pods_on_node", name)
        return [copy.deepcopy(p) for p in self.pods.values() if p.spec.node_name == name]

    def get_pod(self, namespace: str, name: str, timeout: float | None = None) -> V1Pod:
        self._record("get_pod", namespace, name)
        pod = self.pods.get((namespace, name))
        if pod is None:
            raise _not_found("pods", name)
        return copy.deepcopy(pod)

    def supports_eviction(self, timeout: float | None = None) -> bool:
        self._record("supports_eviction")
        return self.eviction_supported

    def _remove(self, key: PodKey) -> None:
        if key not in self.pods:
            raise _not_found("pods", key[1])
        if key not in self.lingering:
            del self.pods[key]

    def evict_pod(self, pod: V1Pod, grace_period_seconds: int | None, timeout: float | None = None) -> None:
        key = (pod.metadata.namespace, pod.metadata.name)
        self._record("evict_pod", *key, grace_period_seconds)
        if key in self.blocked:
            raise ControlPlaneError(
                "Cannot evict pod as it would violate the pod's disruption budget.",
                FailureKind.TOO_MANY_REQUESTS,
                429,
            )
        self._remove(key)

    def delete_pod(self, pod: V1Pod, grace_period_seconds: int | None, timeout: float | None = None) -> None:
        key = (pod.metadata.namespace, pod.metadata.name)
        self._record("delete_pod", *key, grace_period_seconds)
        self._remove(key)

    def daemon_set_exists(self, namespace: str, name: str, timeout: float | None = None) -> bool:
        self._record("daemon_set_exists", namespace, name)
        return (namespace, name) in self.daemon_sets
