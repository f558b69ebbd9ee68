"""Per-request operation context.

Every node operation receives an ``OperationContext`` instead of reaching for
module globals: it carries the control-plane client, the logger, the
cancellation event set when the caller goes away, and (for drains) the
deadline. Operations call ``check`` before each control-plane round trip and
``pause`` instead of ``time.sleep`` so cancellation and deadlines take effect
promptly.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import NamedTuple, Protocol

from adapters.base import NodeClient

from .errors import ErrorKind, NodeActionError


class PodRemoval(NamedTuple):
    namespace: str
    name: str
    using_eviction: bool


class ProgressSink(Protocol):
    def __call__(self, event: PodRemoval) -> None:
        ...


@dataclass
class OperationContext:
    client: NodeClient
    logger: logging.Logger | logging.LoggerAdapter
    cancelled: threading.Event = field(default_factory=threading.Event)
    on_progress: ProgressSink | None = None
    api_timeout: float = 30.0
    poll_interval: float = 1.0
    eviction_retry_interval: float = 5.0
    deadline: float | None = None
    budget_seconds: int | None = None
    started: float = field(default_factory=time.monotonic)

    def with_deadline(self, seconds: int) -> "OperationContext":
        """Bound the operation to ``seconds`` counted from when the request arrived."""
        return dataclasses.replace(self, deadline=self.started + seconds, budget_seconds=seconds)

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, doing: str) -> None:
        if self.cancelled.is_set():
            raise NodeActionError(f"request cancelled while {doing}", ErrorKind.INTERNAL)
        if self.expired():
            raise NodeActionError(
                f"timed out after {self.budget_seconds}s while {doing}", ErrorKind.DEADLINE_EXCEEDED
            )

    def call_timeout(self) -> float:
        remaining = self.remaining()
        if remaining is None:
            return self.api_timeout
        return max(0.001, min(self.api_timeout, remaining))

    def fail(self, doing: str, exc: BaseException) -> NodeActionError:
        """Classify a failed control-plane call made while ``doing``."""
        if self.expired():
            return NodeActionError(
                f"timed out after {self.budget_seconds}s while {doing}", ErrorKind.DEADLINE_EXCEEDED, exc
            )
        return NodeActionError(f"{doing}: {exc}", ErrorKind.INTERNAL, exc)

    def pause(self, seconds: float) -> None:
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self.cancelled.wait(seconds)

    def report(self, namespace: str, name: str, using_eviction: bool) -> None:
        if self.on_progress is not None:
            self.on_progress(PodRemoval(namespace, name, using_eviction))
