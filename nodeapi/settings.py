from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # local | kubeconfig | sa | mock
    k8s_mode: str = "local"
    k8s_kubeconfig: str | None = None
    k8s_context: str | None = None
    k8s_host: str | None = None
    k8s_sa_token: str | None = None
    k8s_sa_ca_crt: str | None = None
    k8s_mock_nodes: list[str] = []
    k8s_request_timeout_seconds: float = 30.0

    drain_poll_interval_seconds: float = 1.0
    eviction_retry_interval_seconds: float = 5.0
    shutdown_grace_seconds: int = 5
    # node operations running at once; further requests wait for a slot
    max_concurrent_operations: int = 64

    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "node-lifecycle-api"

    class Config:
        env_prefix = ""
        env_file = ".env"
        case_sensitive = False
