from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Iterator

from kubernetes import client
from kubernetes.client import AppsV1Api, CoreV1Api, V1Node, V1Pod
from kubernetes.client.exceptions import ApiException
from opentelemetry import trace
from urllib3.exceptions import HTTPError

from ..types import ControlPlaneError, FailureKind

tracer = trace.get_tracer(__name__)

LIST_PAGE_SIZE = 500


def format_api_exception(exc: ApiException) -> str:
    """Return the API server's own message, without headers or audit ids."""
    body = exc.body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if body:
        try:
            message = json.loads(body).get("message")
        except (ValueError, AttributeError):
            message = None
        if message:
            return message
    return f"{exc.status} {exc.reason}".strip()


@contextmanager
def _translate(span_name: str, **attributes: Any) -> Iterator[trace.Span]:
    with tracer.start_as_current_span(span_name) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)
        try:
            yield span
        except ApiException as exc:
            span.set_attribute("http.status_code", exc.status or 0)
            raise ControlPlaneError.from_status(format_api_exception(exc), exc.status) from exc
        except HTTPError as exc:
            span.record_exception(exc)
            raise ControlPlaneError(str(exc), FailureKind.TRANSPORT) from exc


def _delete_options(grace_period_seconds: int | None) -> client.V1DeleteOptions | None:
    if grace_period_seconds is None:
        return None
    return client.V1DeleteOptions(grace_period_seconds=grace_period_seconds)


class KubeNodeClient:
    """NodeClient backed by the official Kubernetes Python client."""

    def __init__(self, core_v1: CoreV1Api, apps_v1: AppsV1Api):
        self._core = core_v1
        self._apps = apps_v1

    def get_node(self, name: str, timeout: float | None = None) -> V1Node:
        with _translate("k8s.read_node", node=name):
            return self._core.read_node(name, _request_timeout=timeout)

    def patch_node(self, node: V1Node, patch: dict[str, Any], timeout: float | None = None) -> V1Node:
        name = node.metadata.name
        with _translate("k8s.patch_node", node=name):
            return self._core.patch_node(name, patch, _request_timeout=timeout)

    def list_pods_on_node(self, name: str, timeout: float | None = None) -> list[V1Pod]:
        pods: list[V1Pod] = []
        token = None
        with _translate("k8s.list_pods", node=name) as span:
            while True:
                kwargs: dict[str, Any] = {
                    "field_selector": f"spec.nodeName={name}",
                    "limit": LIST_PAGE_SIZE,
                    "_request_timeout": timeout,
                }
                if token:
                    kwargs["_continue"] = token
                page = self._core.list_pod_for_all_namespaces(**kwargs)
                pods.extend(page.items or [])
                token = page.metadata._continue if page.metadata else None
                if not token:
                    break
            span.set_attribute("pods", len(pods))
        return pods

    def get_pod(self, namespace: str, name: str, timeout: float | None = None) -> V1Pod:
        with _translate("k8s.read_pod", namespace=namespace, pod=name):
            return self._core.read_namespaced_pod(name, namespace, _request_timeout=timeout)

    def supports_eviction(self, timeout: float | None = None) -> bool:
        with _translate("k8s.get_api_resources") as span:
            resources = self._core.get_api_resources(_request_timeout=timeout)
            supported = any(r.name == "pods/eviction" for r in (resources.resources or []))
            span.set_attribute("eviction", supported)
            return supported

    def evict_pod(self, pod: V1Pod, grace_period_seconds: int | None, timeout: float | None = None) -> None:
        name = pod.metadata.name
        namespace = pod.metadata.namespace
        body = client.V1Eviction(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            delete_options=_delete_options(grace_period_seconds),
        )
        with _translate("k8s.evict_pod", namespace=namespace, pod=name):
            self._core.create_namespaced_pod_eviction(name, namespace, body, _request_timeout=timeout)

    def delete_pod(self, pod: V1Pod, grace_period_seconds: int | None, timeout: float | None = None) -> None:
        name = pod.metadata.name
        namespace = pod.metadata.namespace
        kwargs: dict[str, Any] = {"_request_timeout": timeout}
        if grace_period_seconds is not None:
            kwargs["grace_period_seconds"] = grace_period_seconds
        with _translate("k8s.delete_pod", namespace=namespace, pod=name):
            self._core.delete_namespaced_pod(name, namespace, **kwargs)

    def daemon_set_exists(self, namespace: str, name: str, timeout: float | None = None) -> bool:
        try:
            with _translate("k8s.read_daemon_set", namespace=namespace, daemon_set=name):
                self._apps.read_namespaced_daemon_set(name, namespace, _request_timeout=timeout)
        except ControlPlaneError as exc:
            if exc.kind is FailureKind.NOT_FOUND:
                return False
            raise
        return True
