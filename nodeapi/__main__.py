from __future__ import annotations

import argparse

import uvicorn

from .main import create_app
from .settings import Settings


def main() -> None:
    settings = Settings()
    parser = argparse.ArgumentParser("nodeapi", description="Cordon, uncordon and drain nodes over HTTP")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args()

    settings = settings.model_copy(update={"host": args.host, "port": args.port, "log_level": args.log_level})
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
    )


if __name__ == "__main__":
    main()
