from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import ProtocolError

from adapters.k8s import auth
from adapters.k8s.adapter import LIST_PAGE_SIZE, KubeNodeClient, format_api_exception
from adapters.k8s.mock import make_node, make_pod
from adapters.types import ControlPlaneError, FailureKind


def api_error(status: int, reason: str, body: str | None = None) -> ApiException:
    exc = ApiException(status=status, reason=reason)
    exc.body = body
    return exc


@pytest.fixture
def core() -> MagicMock:
    return MagicMock(spec=client.CoreV1Api)


@pytest.fixture
def apps() -> MagicMock:
    return MagicMock(spec=client.AppsV1Api)


@pytest.fixture
def kube(core: MagicMock, apps: MagicMock) -> KubeNodeClient:
    return KubeNodeClient(core, apps)


def test_format_prefers_status_message() -> None:
    exc = api_error(404, "Not Found", '{"kind": "Status", "message": "nodes \\"x\\" not found"}')
    assert format_api_exception(exc) == 'nodes "x" not found'


def test_format_falls_back_to_reason() -> None:
    assert format_api_exception(api_error(502, "Bad Gateway", "<html>")) == "502 Bad Gateway"
    assert format_api_exception(api_error(500, "Internal Server Error")) == "500 Internal Server Error"


@pytest.mark.parametrize(
    "status,kind",
    [
        (404, FailureKind.NOT_FOUND),
        (409, FailureKind.CONFLICT),
        (403, FailureKind.FORBIDDEN),
        (429, FailureKind.TOO_MANY_REQUESTS),
        (500, FailureKind.UNKNOWN),
    ],
)
def test_api_errors_are_classified(core: MagicMock, kube: KubeNodeClient, status: int, kind: FailureKind) -> None:
    core.read_node.side_effect = api_error(status, "whatever", '{"message": "denied"}')
    with pytest.raises(ControlPlaneError) as err:
        kube.get_node("node-a", timeout=3)
    assert err.value.kind is kind
    assert err.value.status == status
    assert err.value.message == "denied"


def test_transport_errors_are_classified(core: MagicMock, kube: KubeNodeClient) -> None:
    core.read_node.side_effect = ProtocolError("Connection aborted.")
    with pytest.raises(ControlPlaneError) as err:
        kube.get_node("node-a")
    assert err.value.kind is FailureKind.TRANSPORT
    assert err.value.status is None


def test_get_node_passes_timeout(core: MagicMock, kube: KubeNodeClient) -> None:
    core.read_node.return_value = make_node("node-a")
    assert kube.get_node("node-a", timeout=2.5).metadata.name == "node-a"
    core.read_node.assert_called_once_with("node-a", _request_timeout=2.5)


def test_patch_node(core: MagicMock, kube: KubeNodeClient) -> None:
    patch_body = {"spec": {"unschedulable": True}, "metadata": {"resourceVersion": "4"}}
    kube.patch_node(make_node("node-a"), patch_body, timeout=1)
    core.patch_node.assert_called_once_with("node-a", patch_body, _request_timeout=1)


def test_list_pods_follows_continue_tokens(core: MagicMock, kube: KubeNodeClient) -> None:
    core.list_pod_for_all_namespaces.side_effect = [
        client.V1PodList(items=[make_pod("a"), make_pod("b")], metadata=client.V1ListMeta(_continue="tok")),
        client.V1PodList(items=[make_pod("c")], metadata=client.V1ListMeta()),
    ]

    pods = kube.list_pods_on_node("node-a", timeout=4)

    assert [p.metadata.name for p in pods] == ["a", "b", "c"]
    first, second = core.list_pod_for_all_namespaces.call_args_list
    assert first.kwargs == {"field_selector": "spec.nodeName=node-a", "limit": LIST_PAGE_SIZE, "_request_timeout": 4}
    assert second.kwargs["_continue"] == "tok"


def test_supports_eviction(core: MagicMock, kube: KubeNodeClient) -> None:
    core.get_api_resources.return_value = SimpleNamespace(
        resources=[SimpleNamespace(name="pods"), SimpleNamespace(name="pods/eviction")]
    )
    assert kube.supports_eviction() is True

    core.get_api_resources.return_value = SimpleNamespace(resources=[SimpleNamespace(name="pods")])
    assert kube.supports_eviction() is False


def test_evict_pod_builds_eviction(core: MagicMock, kube: KubeNodeClient) -> None:
    kube.evict_pod(make_pod("web-1", namespace="shop"), 30, timeout=5)

    name, namespace, body = core.create_namespaced_pod_eviction.call_args.args
    assert (name, namespace) == ("web-1", "shop")
    assert isinstance(body, client.V1Eviction)
    assert body.metadata.name == "web-1"
    assert body.delete_options.grace_period_seconds == 30


def test_evict_pod_without_grace_period(core: MagicMock, kube: KubeNodeClient) -> None:
    kube.evict_pod(make_pod("web-1"), None)
    body = core.create_namespaced_pod_eviction.call_args.args[2]
    assert body.delete_options is None


def test_evict_pod_blocked_by_budget(core: MagicMock, kube: KubeNodeClient) -> None:
    core.create_namespaced_pod_eviction.side_effect = api_error(429, "Too Many Requests")
    with pytest.raises(ControlPlaneError) as err:
        kube.evict_pod(make_pod("web-1"), None)
    assert err.value.kind is FailureKind.TOO_MANY_REQUESTS


def test_delete_pod(core: MagicMock, kube: KubeNodeClient) -> None:
    kube.delete_pod(make_pod("web-1"), 10, timeout=2)
    core.delete_namespaced_pod.assert_called_once_with(
        "web-1", "default", _request_timeout=2, grace_period_seconds=10
    )

    core.reset_mock()
    kube.delete_pod(make_pod("web-1"), None, timeout=2)
    core.delete_namespaced_pod.assert_called_once_with("web-1", "default", _request_timeout=2)


def test_daemon_set_exists(apps: MagicMock, kube: KubeNodeClient) -> None:
    assert kube.daemon_set_exists("kube-system", "fluentd") is True

    apps.read_namespaced_daemon_set.side_effect = api_error(404, "Not Found")
    assert kube.daemon_set_exists("kube-system", "fluentd") is False

    apps.read_namespaced_daemon_set.side_effect = api_error(403, "Forbidden")
    with pytest.raises(ControlPlaneError):
        kube.daemon_set_exists("kube-system", "fluentd")


def test_service_account_mode_requires_token() -> None:
    with pytest.raises(RuntimeError):
        auth.get_client(mode="sa")


def test_service_account_mode() -> None:
    core_v1, apps_v1 = auth.get_client(mode="sa", host="https://k8s.example:6443", token="secret")
    configuration = core_v1.api_client.configuration
    assert configuration.host == "https://k8s.example:6443"
    assert configuration.api_key["authorization"] == "secret"
    assert apps_v1.api_client is core_v1.api_client


def test_local_mode_falls_back_to_kubeconfig() -> None:
    with patch.object(config, "load_incluster_config", side_effect=config.ConfigException("not in cluster")), \
            patch.object(config, "load_kube_config") as load_kube_config:
        auth.get_client(mode="local", context="staging")
    load_kube_config.assert_called_once_with(config_file=auth.DEFAULT_KUBECONFIG, context="staging")


def test_unknown_mode() -> None:
    with pytest.raises(ValueError):
        auth.get_client(mode="carrier-pigeon")
