from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, StrictBool, StrictInt, StrictStr, model_validator

DEFAULT_IGNORE_DAEMON_SETS = True
DEFAULT_GRACE_PERIOD_SECONDS = -1
DEFAULT_TIMEOUT_SECONDS = 300


class NodeActionPayload(BaseModel):
    """Wire shape of an action request; ``None`` means the field was absent."""

    node: Optional[StrictStr] = None
    force: Optional[StrictBool] = None
    deleteEmptyDirData: Optional[StrictBool] = None
    ignoreDaemonSets: Optional[StrictBool] = None
    gracePeriodSeconds: Optional[StrictInt] = None
    timeoutSeconds: Optional[StrictInt] = None

    class Config:
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def fold_field_case(cls, data: Any) -> Any:
        """Match keys to fields ignoring case; a later key wins over an earlier one."""
        if not isinstance(data, dict):
            return data
        names = {name.lower(): name for name in cls.model_fields}
        folded: dict[str, Any] = {}
        for key, value in data.items():
            folded[names.get(key.lower(), key)] = value
        return folded


class NodeActionRequest(BaseModel):
    node: str
    force: bool = False
    delete_empty_dir_data: bool = False
    ignore_daemon_sets: bool = DEFAULT_IGNORE_DAEMON_SETS
    grace_period_seconds: int = DEFAULT_GRACE_PERIOD_SECONDS
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    class Config:
        frozen = True


class DrainPolicy(BaseModel):
    force: bool = False
    grace_period_seconds: int = DEFAULT_GRACE_PERIOD_SECONDS
    ignore_daemon_sets: bool = DEFAULT_IGNORE_DAEMON_SETS
    delete_empty_dir_data: bool = False
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    class Config:
        frozen = True

    @classmethod
    def from_request(cls, req: NodeActionRequest) -> "DrainPolicy":
        return cls(
            force=req.force,
            grace_period_seconds=req.grace_period_seconds,
            ignore_daemon_sets=req.ignore_daemon_sets,
            delete_empty_dir_data=req.delete_empty_dir_data,
            timeout_seconds=req.timeout_seconds,
        )

    @property
    def effective_timeout_seconds(self) -> int:
        if self.timeout_seconds <= 0:
            return DEFAULT_TIMEOUT_SECONDS
        return self.timeout_seconds

    @property
    def effective_grace_period(self) -> int | None:
        # zero and negative values defer to the pod's terminationGracePeriodSeconds
        if self.grace_period_seconds <= 0:
            return None
        return self.grace_period_seconds


class ActionOutcome(BaseModel):
    node: str
    status: str


class DrainOutcome(ActionOutcome):
    status: str = "drained"
    force: bool
    ignoreDaemonSets: bool
    deleteEmptyDirData: bool
    timeoutSeconds: int


class ErrorBody(BaseModel):
    error: str
