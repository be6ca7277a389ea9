from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.errors import IllegalTransitionError

STATE_SCHEMA_VERSION = "1.0.0"


class StepKind(str, Enum):
    AUTOMATED = "automated"
    MANUAL = "manual"


class StepSubtype(str, Enum):
    BREW = "brew"
    BREW_CASK = "brew-cask"
    MAC_DEFAULTS = "mac-defaults"
    OTHER = "other"

    @property
    def reversible(self) -> bool:
        return self in REVERSIBLE_SUBTYPES


REVERSIBLE_SUBTYPES = frozenset({StepSubtype.BREW, StepSubtype.BREW_CASK, StepSubtype.MAC_DEFAULTS})


class StepStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    REVERSIBLE_PENDING = "reversible-pending"


# Legal lifecycle edges; anything else is an IllegalTransitionError.
TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.COMPLETE}),
    StepStatus.COMPLETE: frozenset({StepStatus.REVERSIBLE_PENDING}),
    StepStatus.REVERSIBLE_PENDING: frozenset({StepStatus.COMPLETE}),
}


def utc_timestamp(now: datetime | None = None) -> str:
    """UTC, second precision, lexicographically sortable (``2025-11-24T12:00:00Z``)."""
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def can_transition(current: StepStatus, target: StepStatus) -> bool:
    return target in TRANSITIONS[current]


class StepRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    id: str = Field(min_length=1)
    description: str = ""
    kind: StepKind
    subtype: StepSubtype
    status: StepStatus = StepStatus.PENDING
    completed_at: str | None = Field(default=None, alias="completedAt")
    undone_at: str | None = Field(default=None, alias="undoneAt")
    params: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_layout(cls, data: Any) -> Any:
        # Older shell-era documents used "undone", snake_case timestamps and an
        # empty "timestamp" placeholder on registration.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("status") == "undone":
            data["status"] = StepStatus.REVERSIBLE_PENDING.value
        if "completed_at" in data and "completedAt" not in data:
            data["completedAt"] = data.pop("completed_at")
        if "undone_at" in data and "undoneAt" not in data:
            data["undoneAt"] = data.pop("undone_at")
        if "subtype" not in data and data.get("kind") == StepKind.MANUAL.value:
            data["subtype"] = StepSubtype.OTHER.value
        if "timestamp" in data:
            stamp = data.pop("timestamp")
            if stamp and not data.get("completedAt"):
                data["completedAt"] = stamp
        for key in ("completedAt", "undoneAt"):
            if data.get(key) == "":
                data[key] = None
        return data

    def _transition(self, target: StepStatus, **update: Any) -> "StepRecord":
        if not can_transition(self.status, target):
            raise IllegalTransitionError(
                f"Cannot move step from {self.status.value} to {target.value}",
                step_id=self.id,
            )
        return self.model_copy(update={"status": target, **update})

    def completed(self, at: str, *, params: dict[str, Any] | None = None) -> "StepRecord":
        update: dict[str, Any] = {"completed_at": at, "undone_at": None}
        if params is not None:
            update["params"] = dict(params)
        return self._transition(StepStatus.COMPLETE, **update)

    def undone(self, at: str) -> "StepRecord":
        return self._transition(StepStatus.REVERSIBLE_PENDING, undone_at=at)

    @property
    def is_complete(self) -> bool:
        return self.status is StepStatus.COMPLETE

    @property
    def is_undoable(self) -> bool:
        return self.is_complete and self.subtype.reversible


class StateDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: str = STATE_SCHEMA_VERSION
    steps: dict[str, StepRecord] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _ids_match_keys(self) -> "StateDocument":
        for key, record in self.steps.items():
            if record.id != key:
                raise ValueError(f"step key {key!r} does not match record id {record.id!r}")
        return self

    def get(self, step_id: str) -> StepRecord | None:
        return self.steps.get(step_id)

    def with_record(self, record: StepRecord) -> "StateDocument":
        steps = dict(self.steps)
        steps[record.id] = record
        return self.model_copy(update={"steps": steps})

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "STATE_SCHEMA_VERSION",
    "StepKind",
    "StepSubtype",
    "StepStatus",
    "REVERSIBLE_SUBTYPES",
    "TRANSITIONS",
    "utc_timestamp",
    "can_transition",
    "StepRecord",
    "StateDocument",
]
