from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence, Union

import orjson
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from core.errors import (
    ActionFailedError,
    ManualStepDeclinedError,
    NotFoundError,
    SetupStateError,
    ValidationError,
)
from schemas.outcomes import StepOutcome
from schemas.plan import SetupPlan, StepSpec
from schemas.state import StepKind
from steps.gate import Action, ExecutionGate, shell_action
from steps.manual import ManualStepPrompter

logger = logging.getLogger(__name__)

ActionFactory = Callable[[Union[str, Sequence[str]]], Action]

# Errors a CONTINUE policy may step past; anything else stops the batch.
CONTINUABLE_ERRORS: tuple[type[SetupStateError], ...] = (ValidationError, ActionFailedError)


class FailurePolicy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


class StepFailure(BaseModel):
    step_id: str
    kind: str
    message: str
    exit_code: int | None = None


class BatchReport(BaseModel):
    outcomes: list[StepOutcome] = Field(default_factory=list)
    failures: list[StepFailure] = Field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.aborted


def load_plan(path: str | Path) -> SetupPlan:
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise NotFoundError(f"Plan file not readable: {path}") from exc
    try:
        return SetupPlan.model_validate(orjson.loads(raw))
    except orjson.JSONDecodeError as exc:
        raise ValidationError(f"Plan file is not valid JSON: {path}") from exc
    except PydanticValidationError as exc:
        raise ValidationError(f"Plan file is invalid: {exc}") from exc


class SetupRunner:
    """Drives a whole plan through the gate and the manual prompter.

    Whether a failed step stops the batch is ``policy``; a declined manual step
    always stops it, and storage or corruption errors always propagate.
    """

    def __init__(
        self,
        gate: ExecutionGate,
        prompter: ManualStepPrompter,
        *,
        policy: FailurePolicy = FailurePolicy.ABORT,
        action_factory: ActionFactory | None = None,
    ) -> None:
        self.gate = gate
        self.prompter = prompter
        self.policy = policy
        self.action_factory = action_factory or shell_action

    def run(self, plan: SetupPlan, *, only: str | None = None) -> BatchReport:
        specs = plan.steps
        if only is not None:
            spec = plan.get(only)
            if spec is None:
                raise NotFoundError(f"Step not in plan: {only}", step_id=only)
            specs = [spec]

        report = BatchReport()
        for spec in specs:
            try:
                report.outcomes.append(self._run_one(spec, reapply=only is not None))
            except ManualStepDeclinedError as exc:
                report.failures.append(self._failure(spec, exc))
                report.aborted = True
                logger.warning("Batch aborted: manual step %s declined", spec.id)
                break
            except CONTINUABLE_ERRORS as exc:
                report.failures.append(self._failure(spec, exc))
                if self.policy == FailurePolicy.ABORT:
                    report.aborted = True
                    logger.error("Batch aborted at step %s: %s", spec.id, exc)
                    break
                logger.warning("Continuing past failed step %s: %s", spec.id, exc)
        return report

    def _run_one(self, spec: StepSpec, *, reapply: bool) -> StepOutcome:
        if spec.kind == StepKind.MANUAL:
            return self.prompter.run_manual_step(spec.id, spec.description, spec.instructions)
        assert spec.command is not None
        return self.gate.run_step(
            spec.id,
            spec.description,
            spec.kind,
            spec.subtype,
            self.action_factory(spec.command),
            params=spec.params or None,
            reapply=reapply,
        )

    @staticmethod
    def _failure(spec: StepSpec, exc: SetupStateError) -> StepFailure:
        return StepFailure(
            step_id=spec.id,
            kind=exc.kind,
            message=exc.message,
            exit_code=getattr(exc, "exit_code", None),
        )


__all__ = [
    "FailurePolicy",
    "StepFailure",
    "BatchReport",
    "SetupRunner",
    "load_plan",
    "CONTINUABLE_ERRORS",
]
