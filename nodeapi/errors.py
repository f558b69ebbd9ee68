"""Error taxonomy for node actions and its mapping to HTTP status codes."""

from __future__ import annotations

import enum

from fastapi import status


class ErrorKind(str, enum.Enum):
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    INTERNAL = "internal"


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.DEADLINE_EXCEEDED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class NodeActionError(Exception):
    """Raised by node operations; ``kind`` decides the HTTP status."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.INTERNAL, cause: BaseException | None = None):
        self.message = message
        self.kind = kind
        self.cause = cause
        super().__init__(message)

    def wrap(self, prefix: str) -> "NodeActionError":
        return NodeActionError(f"{prefix}: {self.message}", self.kind, self.cause or self)


def invalid_request(detail: str) -> NodeActionError:
    return NodeActionError(f"bad request: {detail}", ErrorKind.INVALID_REQUEST)


def status_for(kind: ErrorKind) -> int:
    return HTTP_STATUS[kind]
