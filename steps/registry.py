from __future__ import annotations

import logging
from typing import Any, Callable

from core.errors import NotFoundError, ValidationError
from infra.observer import NullObserver, StepObserver
from schemas.state import StepKind, StepRecord, StepStatus, StepSubtype, utc_timestamp
from store.state_store import StateStore

logger = logging.getLogger(__name__)

Clock = Callable[[], str]


def _allowed(enum_cls: type[StepKind] | type[StepSubtype]) -> str:
    return ", ".join(member.value for member in enum_cls)


def validate_kind(kind: str | StepKind) -> StepKind:
    try:
        return StepKind(kind)
    except ValueError as exc:
        raise ValidationError(f"kind must be one of [{_allowed(StepKind)}], got: {kind!r}") from exc


def validate_subtype(subtype: str | StepSubtype) -> StepSubtype:
    try:
        return StepSubtype(subtype)
    except ValueError as exc:
        raise ValidationError(f"subtype must be one of [{_allowed(StepSubtype)}], got: {subtype!r}") from exc


def validate_step_id(step_id: str) -> str:
    if not isinstance(step_id, str) or not step_id.strip():
        raise ValidationError("step id must be a non-empty string")
    return step_id


class StepRegistry:
    """Creates, validates and queries step records.

    Every call re-reads the document, changes a local copy and writes it back
    through the store; nothing here caches the document between calls.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        clock: Clock = utc_timestamp,
        observer: StepObserver | NullObserver | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.observer = observer or NullObserver()

    def register(
        self,
        step_id: str,
        description: str,
        kind: str | StepKind,
        subtype: str | StepSubtype,
        *,
        params: dict[str, Any] | None = None,
    ) -> StepRecord:
        validate_step_id(step_id)
        step_kind = validate_kind(kind)
        step_subtype = validate_subtype(subtype)

        doc = self.store.read()
        existing = doc.get(step_id)
        if existing is not None:
            return existing

        record = StepRecord(
            id=step_id,
            description=description,
            kind=step_kind,
            subtype=step_subtype,
            status=StepStatus.PENDING,
            params=dict(params or {}),
        )
        self.store.write(doc.with_record(record))
        logger.info("Registered step %s (%s/%s)", step_id, step_kind.value, step_subtype.value)
        self.observer.record(step_id, "registered", {"kind": step_kind.value, "subtype": step_subtype.value})
        return record

    def get(self, step_id: str) -> StepRecord:
        record = self.find(step_id)
        if record is None:
            raise NotFoundError(f"Step not found: {step_id}", step_id=step_id)
        return record

    def find(self, step_id: str) -> StepRecord | None:
        return self.store.read().get(step_id)

    def get_status(self, step_id: str) -> StepStatus:
        return self.get(step_id).status

    def is_complete(self, step_id: str) -> bool:
        record = self.find(step_id)
        return record is not None and record.is_complete

    def mark_complete(self, step_id: str, *, params: dict[str, Any] | None = None) -> StepRecord:
        doc = self.store.read()
        record = doc.get(step_id)
        if record is None:
            raise NotFoundError(f"Step not found: {step_id}", step_id=step_id)

        if record.is_complete:
            # Keep the original completion time; only refresh params.
            if params is None:
                return record
            updated = record.model_copy(update={"params": dict(params)})
        else:
            updated = record.completed(self.clock(), params=params)

        self.store.write(doc.with_record(updated))
        logger.info("Step %s marked complete", step_id)
        self.observer.record(step_id, "completed", {"completed_at": updated.completed_at})
        return updated

    def list_records(self) -> list[StepRecord]:
        return list(self.store.read().steps.values())


__all__ = [
    "StepRegistry",
    "Clock",
    "validate_kind",
    "validate_subtype",
    "validate_step_id",
]
