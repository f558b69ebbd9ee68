import logging

import pytest
from fastapi.testclient import TestClient

from adapters.k8s.mock import FakeNodeClient, make_pod
from adapters.types import ControlPlaneError, FailureKind
from nodeapi.main import build_node_client, create_app
from nodeapi.settings import Settings


def test_health(client: TestClient) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_cordon_and_uncordon(client: TestClient, fake: FakeNodeClient) -> None:
    resp = client.post("/cordon", json={"node": "node-a"})
    assert resp.status_code == 200
    assert resp.json() == {"node": "node-a", "status": "cordoned"}
    assert fake.nodes["node-a"].spec.unschedulable is True

    again = client.post("/cordon", json={"node": "node-a"})
    assert again.json() == {"node": "node-a", "status": "already cordoned"}

    resp = client.post("/uncordon", json={"node": "node-a"})
    assert resp.status_code == 200
    assert resp.json() == {"node": "node-a", "status": "uncordoned"}
    assert len(fake.mutations) == 2


def test_uncordon_schedulable_node(client: TestClient) -> None:
    resp = client.post("/uncordon", json={"node": " node-a "})
    assert resp.status_code == 200
    assert resp.json() == {"node": "node-a", "status": "already schedulable"}


def test_drain_defaults(client: TestClient, fake: FakeNodeClient) -> None:
    fake.add_pod(make_pod("web-1"))

    resp = client.post("/drain", json={"node": "node-a"})

    assert resp.status_code == 200
    assert resp.json() == {
        "node": "node-a",
        "status": "drained",
        "force": False,
        "ignoreDaemonSets": True,
        "deleteEmptyDirData": False,
        "timeoutSeconds": 300,
    }
    assert fake.pods == {}


def test_drain_echoes_policy(client: TestClient, fake: FakeNodeClient) -> None:
    fake.add_pod(make_pod("bare", owner_kind=None))

    resp = client.post(
        "/drain",
        json={"node": "node-a", "force": True, "ignoreDaemonSets": False, "timeoutSeconds": 10},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["force"] is True
    assert body["ignoreDaemonSets"] is False
    assert body["timeoutSeconds"] == 10


def test_drain_logs_each_removal(
    client: TestClient, fake: FakeNodeClient, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)
    fake.add_pod(make_pod("web-1", namespace="shop"))

    assert client.post("/drain", json={"node": "node-a"}).status_code == 200
    assert "evicted shop/web-1 (eviction=true) node=node-a" in caplog.text


def test_unknown_node(client: TestClient) -> None:
    resp = client.post("/cordon", json={"node": "nope"})
    assert resp.status_code == 404
    assert resp.json() == {"error": 'nodes "nope" not found'}


@pytest.mark.parametrize("path", ["/cordon", "/uncordon", "/drain"])
def test_missing_node_is_bad_request(client: TestClient, fake: FakeNodeClient, path: str) -> None:
    resp = client.post(path, json={"force": True})
    assert resp.status_code == 400
    assert resp.json() == {"error": "bad request: node is required"}
    assert fake.calls == []


def test_malformed_body_is_bad_request(client: TestClient) -> None:
    resp = client.post("/drain", content=b"{not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("bad request: ")


def test_empty_body_is_bad_request(client: TestClient) -> None:
    resp = client.post("/cordon")
    assert resp.status_code == 400


def test_control_plane_failure_is_500(client: TestClient, fake: FakeNodeClient) -> None:
    fake.failures["get_node"] = ControlPlaneError("etcdserver: leader changed", FailureKind.UNKNOWN, 500)
    resp = client.post("/cordon", json={"node": "node-a"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "etcdserver: leader changed"}


def test_conflict_is_500(client: TestClient, fake: FakeNodeClient) -> None:
    fake.failures["patch_node"] = ControlPlaneError("the object has been modified", FailureKind.CONFLICT, 409)
    resp = client.post("/cordon", json={"node": "node-a"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "cordon node node-a: the object has been modified"}


def test_unexpected_error_is_500(client: TestClient, fake: FakeNodeClient) -> None:
    fake.failures["get_node"] = RuntimeError("kaboom")  # type: ignore[assignment]
    resp = client.post("/uncordon", json={"node": "node-a"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "kaboom"}


def test_drain_timeout_is_500(client: TestClient, fake: FakeNodeClient) -> None:
    fake.add_pod(make_pod("web-1"))
    fake.blocked.add(("default", "web-1"))

    resp = client.post("/drain", json={"node": "node-a", "timeoutSeconds": 1})

    assert resp.status_code == 500
    assert resp.json()["error"].startswith("drain node node-a: timed out after 1s")


def test_drain_refusal_is_500(client: TestClient, fake: FakeNodeClient) -> None:
    fake.add_pod(make_pod("cache", empty_dir=True))
    resp = client.post("/drain", json={"node": "node-a"})
    assert resp.status_code == 500
    assert "default/cache" in resp.json()["error"]


@pytest.mark.parametrize("path", ["/cordon", "/uncordon", "/drain"])
def test_wrong_method(client: TestClient, path: str) -> None:
    resp = client.get(path)
    assert resp.status_code == 405
    assert resp.json() == {"error": "Method Not Allowed"}


def test_metrics(client: TestClient) -> None:
    client.post("/cordon", json={"node": "node-a"})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert 'node_action_requests_total{action="cordon",code="200"}' in resp.text
    assert "node_action_latency_seconds_bucket" in resp.text


def test_mock_mode_seeds_nodes() -> None:
    node_client = build_node_client(Settings(k8s_mode="mock", k8s_mock_nodes=["n1", "n2"]))
    assert isinstance(node_client, FakeNodeClient)
    assert sorted(node_client.nodes) == ["n1", "n2"]


def test_app_factory_builds_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("K8S_MODE", "mock")
    monkeypatch.setenv("K8S_MOCK_NODES", '["node-z"]')
    with TestClient(create_app()) as test_client:
        resp = test_client.post("/cordon", json={"node": "node-z"})
    assert resp.json() == {"node": "node-z", "status": "cordoned"}


def test_importing_the_app_module_builds_nothing() -> None:
    import nodeapi.main

    assert not hasattr(nodeapi.main, "app")
