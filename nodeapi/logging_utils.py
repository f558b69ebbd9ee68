"""Logging setup and node-scoped loggers."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


class NodeLogAdapter(logging.LoggerAdapter):
    """Appends ``node=<name>`` to every message so lines can be keyed by node."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("node", self.extra["node"])
        kwargs["extra"] = extra
        return f"{msg} node={self.extra['node']}", kwargs


def node_logger(logger: logging.Logger | logging.LoggerAdapter, node: str) -> NodeLogAdapter:
    if isinstance(logger, logging.LoggerAdapter):
        logger = logger.logger
    return NodeLogAdapter(logger, {"node": node})
