from __future__ import annotations

from pydantic import ValidationError

from .errors import invalid_request
from .schemas import (
    DEFAULT_GRACE_PERIOD_SECONDS,
    DEFAULT_IGNORE_DAEMON_SETS,
    DEFAULT_TIMEOUT_SECONDS,
    NodeActionPayload,
    NodeActionRequest,
)


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    if loc:
        return f"{loc}: {err['msg']}"
    return err["msg"]


def _or(value, default):
    return default if value is None else value


def decode_request(body: bytes | str) -> NodeActionRequest:
    """Parse a JSON action request and fill defaults for absent fields."""
    try:
        raw = NodeActionPayload.model_validate_json(body)
    except ValidationError as exc:
        raise invalid_request(_describe(exc)) from exc

    node = (raw.node or "").strip()
    if not node:
        raise invalid_request("node is required")

    return NodeActionRequest(
        node=node,
        force=_or(raw.force, False),
        delete_empty_dir_data=_or(raw.deleteEmptyDirData, False),
        ignore_daemon_sets=_or(raw.ignoreDaemonSets, DEFAULT_IGNORE_DAEMON_SETS),
        grace_period_seconds=_or(raw.gracePeriodSeconds, DEFAULT_GRACE_PERIOD_SECONDS),
        timeout_seconds=_or(raw.timeoutSeconds, DEFAULT_TIMEOUT_SECONDS),
    )
