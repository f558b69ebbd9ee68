from __future__ import annotations

import os

from kubernetes import client, config
from kubernetes.client import AppsV1Api, CoreV1Api

DEFAULT_KUBECONFIG = os.path.expanduser("~/.kube/config")


def get_client(
    mode: str = "local",
    kubeconfig: str | None = None,
    context: str | None = None,
    host: str | None = None,
    token: str | None = None,
    ca_crt: str | None = None,
) -> tuple[CoreV1Api, AppsV1Api]:
    """Build Kubernetes API clients for the given auth mode.

    ``sa`` uses an explicit service account token, ``kubeconfig`` a kubeconfig
    file, and ``local`` tries the in-cluster config before falling back to
    the kubeconfig.
    """
    if mode == "sa":
        if not token:
            raise RuntimeError("K8S_SA_TOKEN required when K8S_MODE=sa")

        configuration = client.Configuration()
        configuration.host = host or "https://kubernetes.default.svc"
        configuration.ssl_ca_cert = ca_crt if ca_crt else None
        configuration.api_key_prefix["authorization"] = "Bearer"
        configuration.api_key["authorization"] = token

        api_client = client.ApiClient(configuration)
        return client.CoreV1Api(api_client), client.AppsV1Api(api_client)

    elif mode == "kubeconfig":
        config.load_kube_config(config_file=kubeconfig or DEFAULT_KUBECONFIG, context=context)
        return client.CoreV1Api(), client.AppsV1Api()

    elif mode == "local":
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=kubeconfig or DEFAULT_KUBECONFIG, context=context)
        return client.CoreV1Api(), client.AppsV1Api()

    raise ValueError(f"unknown K8S_MODE: {mode}")
