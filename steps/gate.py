from __future__ import annotations

import logging
from typing import Any, Callable, Sequence, Union

from core.errors import ActionFailedError, ValidationError
from infra.command import run_cmd
from infra.observer import NullObserver, StepObserver
from schemas.outcomes import ActionResult, StepOutcome, StepOutcomeKind
from schemas.state import StepKind, StepRecord, StepStatus, StepSubtype
from steps.registry import StepRegistry, validate_kind, validate_step_id, validate_subtype

logger = logging.getLogger(__name__)

ActionReturn = Union[ActionResult, int, bool, None]
Action = Callable[[], ActionReturn]


def shell_action(command: str | Sequence[str]) -> Action:
    """Build an action that runs ``command`` with output streamed to the terminal."""

    def _run() -> ActionResult:
        result = run_cmd(command, capture=False)
        return ActionResult(exit_code=result.returncode, stdout=result.stdout, stderr=result.stderr)

    return _run


def _normalize(result: ActionReturn) -> ActionResult:
    if isinstance(result, ActionResult):
        return result
    if result is None or result is True:
        return ActionResult(exit_code=0)
    if result is False:
        return ActionResult(exit_code=1)
    if isinstance(result, int):
        return ActionResult(exit_code=result)
    raise ValidationError(f"action returned unsupported value: {result!r}")


class ExecutionGate:
    """Runs a step's action at most once until it is undone.

    ``complete`` steps are skipped. ``reversible-pending`` steps are reported as
    undone and left alone unless ``reapply`` is set for a targeted re-run.
    A failed action leaves the record as it was and raises ``ActionFailedError``;
    retries are the caller's business.
    """

    def __init__(
        self,
        registry: StepRegistry,
        observer: StepObserver | NullObserver | None = None,
    ) -> None:
        self.registry = registry
        self.store = registry.store
        self.observer = observer or registry.observer

    def run_step(
        self,
        step_id: str,
        description: str,
        kind: str | StepKind,
        subtype: str | StepSubtype,
        action: Action,
        *,
        params: dict[str, Any] | None = None,
        reapply: bool = False,
    ) -> StepOutcome:
        validate_step_id(step_id)
        step_kind = validate_kind(kind)
        step_subtype = validate_subtype(subtype)

        self.store.initialize()
        current = self.registry.find(step_id)

        if current is not None and current.status is StepStatus.COMPLETE:
            logger.info("Skipping completed step %s", step_id)
            self.observer.record(step_id, "skipped")
            return StepOutcome(
                step_id=step_id,
                description=description,
                outcome=StepOutcomeKind.SKIPPED,
                completed_at=current.completed_at,
            )

        if current is not None and current.status is StepStatus.REVERSIBLE_PENDING and not reapply:
            logger.info("Step %s was undone; re-apply available", step_id)
            self.observer.record(step_id, "undone_skipped")
            return StepOutcome(step_id=step_id, description=description, outcome=StepOutcomeKind.UNDONE_AVAILABLE)

        if current is None:
            current = self.registry.register(step_id, description, step_kind, step_subtype, params=params)

        logger.info("Running step %s: %s", step_id, description)
        result = _normalize(action())
        if not result.ok:
            logger.error("Step %s failed with exit code %s", step_id, result.exit_code)
            self.observer.record(step_id, "failed", {"exit_code": result.exit_code})
            raise ActionFailedError(
                f"Step action failed (exit_code={result.exit_code}): {description}",
                step_id=step_id,
                exit_code=result.exit_code,
            )

        record = self._record_completion(current, description, step_kind, step_subtype, params)
        self.observer.record(step_id, "completed", {"completed_at": record.completed_at})
        return StepOutcome(
            step_id=step_id,
            description=description,
            outcome=StepOutcomeKind.RAN,
            completed_at=record.completed_at,
            action=result,
        )

    def _record_completion(
        self,
        previous: StepRecord,
        description: str,
        kind: StepKind,
        subtype: StepSubtype,
        params: dict[str, Any] | None,
    ) -> StepRecord:
        # Re-read: the action may have taken a long time.
        doc = self.store.read()
        on_disk = doc.get(previous.id) or previous
        fresh = StepRecord(
            id=previous.id,
            description=description,
            kind=kind,
            subtype=subtype,
            status=on_disk.status,
            params=dict(params) if params is not None else dict(on_disk.params),
        )
        completed = fresh.completed(self.registry.clock())
        self.store.write(doc.with_record(completed))
        logger.info("Step %s complete at %s", previous.id, completed.completed_at)
        return completed


__all__ = ["Action", "ActionReturn", "ExecutionGate", "shell_action"]
