from __future__ import annotations

import enum


class FailureKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    TOO_MANY_REQUESTS = "too_many_requests"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


_STATUS_KINDS = {
    401: FailureKind.FORBIDDEN,
    403: FailureKind.FORBIDDEN,
    404: FailureKind.NOT_FOUND,
    409: FailureKind.CONFLICT,
    429: FailureKind.TOO_MANY_REQUESTS,
}


def kind_for_status(status: int | None) -> FailureKind:
    if status is None:
        return FailureKind.TRANSPORT
    return _STATUS_KINDS.get(status, FailureKind.UNKNOWN)


class ControlPlaneError(Exception):
    """Raised by a NodeClient when the control plane rejects or fails a call."""

    def __init__(self, message: str, kind: FailureKind, status: int | None = None):
        self.message = message
        self.kind = kind
        self.status = status
        super().__init__(message)

    @classmethod
    def from_status(cls, message: str, status: int | None) -> "ControlPlaneError":
        return cls(message, kind_for_status(status), status)
