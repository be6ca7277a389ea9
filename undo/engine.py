from __future__ import annotations

import logging
from typing import Mapping

from core.errors import NotFoundError, NotReversibleError, UnsupportedSubtypeError
from infra.observer import NullObserver, StepObserver
from infra.system import SystemCapabilities
from schemas.outcomes import UndoableStep, UndoReport
from schemas.state import REVERSIBLE_SUBTYPES, StepRecord, StepStatus, StepSubtype, utc_timestamp
from steps.registry import Clock, validate_subtype
from store.state_store import StateStore
from undo.handlers import DEFAULT_HANDLERS, UndoHandler

logger = logging.getLogger(__name__)


class UndoEngine:
    """Reverses completed steps of the reversible subtypes.

    The record only moves to ``reversible-pending`` after the inverse action
    succeeded, or after the handler showed it was unnecessary (target already
    absent). Any other failure leaves the record ``complete``.
    """

    def __init__(
        self,
        store: StateStore,
        system: SystemCapabilities,
        *,
        handlers: Mapping[StepSubtype, UndoHandler] | None = None,
        clock: Clock = utc_timestamp,
        observer: StepObserver | NullObserver | None = None,
    ) -> None:
        self.store = store
        self.system = system
        self.handlers = dict(handlers or DEFAULT_HANDLERS)
        self.clock = clock
        self.observer = observer or NullObserver()

    def undo(self, step_id: str, expected_subtype: str | StepSubtype | None = None) -> UndoReport:
        record = self._load_for_undo(step_id)
        handler = self._handler_for(record, expected_subtype)

        logger.info("Undoing step %s (%s)", step_id, record.subtype.value)
        reversal = handler.reverse(record, self.system)

        undone = self._mark_undone(step_id)
        logger.info("Step %s undone (%s %s)", step_id, reversal.effect.value, reversal.target)
        self.observer.record(
            step_id,
            "undone",
            {"effect": reversal.effect.value, "target": reversal.target, "warnings": reversal.warnings},
        )
        return UndoReport(
            step_id=step_id,
            description=undone.description,
            subtype=undone.subtype,
            undone_at=undone.undone_at or "",
            **reversal.model_dump(),
        )

    def undo_brew(self, step_id: str) -> UndoReport:
        return self.undo(step_id, expected_subtype=StepSubtype.BREW)

    def undo_brew_cask(self, step_id: str) -> UndoReport:
        return self.undo(step_id, expected_subtype=StepSubtype.BREW_CASK)

    def undo_mac_defaults(self, step_id: str) -> UndoReport:
        return self.undo(step_id, expected_subtype=StepSubtype.MAC_DEFAULTS)

    def is_undoable(self, step_id: str) -> bool:
        record = self.store.read().get(step_id)
        return record is not None and record.is_undoable

    def list_undoable(self) -> list[UndoableStep]:
        doc = self.store.read()
        return [
            UndoableStep(step_id=step_id, description=record.description, subtype=record.subtype)
            for step_id, record in doc.steps.items()
            if record.is_undoable
        ]

    def _load_for_undo(self, step_id: str) -> StepRecord:
        record = self.store.read().get(step_id)
        if record is None:
            raise NotFoundError(f"Step not found in state: {step_id}", step_id=step_id)
        if record.status is not StepStatus.COMPLETE:
            raise NotReversibleError(
                f"Step was not completed, cannot undo: {step_id} (status: {record.status.value})",
                step_id=step_id,
            )
        return record

    def _handler_for(self, record: StepRecord, expected_subtype: str | StepSubtype | None) -> UndoHandler:
        if record.subtype not in REVERSIBLE_SUBTYPES:
            raise UnsupportedSubtypeError(
                f"Step subtype {record.subtype.value!r} is not reversible: {record.id}",
                step_id=record.id,
            )
        expected = validate_subtype(expected_subtype) if expected_subtype is not None else None
        if expected is not None and expected != record.subtype:
            raise UnsupportedSubtypeError(
                f"Step is not a {expected.value} step (subtype: {record.subtype.value})",
                step_id=record.id,
            )
        handler = self.handlers.get(record.subtype)
        if handler is None:
            raise UnsupportedSubtypeError(
                f"No undo handler registered for subtype {record.subtype.value!r}",
                step_id=record.id,
            )
        return handler

    def _mark_undone(self, step_id: str) -> StepRecord:
        doc = self.store.read()
        record = doc.get(step_id)
        if record is None:
            raise NotFoundError(f"Step disappeared during undo: {step_id}", step_id=step_id)
        undone = record.undone(self.clock())
        self.store.write(doc.with_record(undone))
        return undone


__all__ = ["UndoEngine"]
