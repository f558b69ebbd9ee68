from __future__ import annotations

from typing import Any, Protocol

from kubernetes.client import V1Node, V1Pod


class NodeClient(Protocol):
    """Control-plane capability consumed by the node operations.

    Implementations raise ``ControlPlaneError`` for every failed call.
    ``timeout`` bounds a single round trip in seconds.
    """

    def get_node(self, name: str, timeout: float | None = None) -> V1Node:
        ...

    def patch_node(self, node: V1Node, patch: dict[str, Any], timeout: float | None = None) -> V1Node:
        ...

    def list_pods_on_node(self, name: str, timeout: float | None = None) -> list[V1Pod]:
        ...

    def get_pod(self, namespace: str, name: str, timeout: float | None = None) -> V1Pod:
        ...

    def supports_eviction(self, timeout: float | None = None) -> bool:
        ...

    def evict_pod(self, pod: V1Pod, grace_period_seconds: int | None, timeout: float | None = None) -> None:
        ...

    def delete_pod(self, pod: V1Pod, grace_period_seconds: int | None, timeout: float | None = None) -> None:
        ...

    def daemon_set_exists(self, namespace: str, name: str, timeout: float | None = None) -> bool:
        ...
