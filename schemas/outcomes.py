from enum import Enum

from pydantic import BaseModel, Field

from schemas.state import StepSubtype


class ActionResult(BaseModel):
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class StepOutcomeKind(str, Enum):
    RAN = "ran"
    SKIPPED = "skipped"
    UNDONE_AVAILABLE = "undone_available"
    DEFERRED = "deferred"


class StepOutcome(BaseModel):
    step_id: str
    description: str
    outcome: StepOutcomeKind
    completed_at: str | None = None
    action: ActionResult | None = None

    @property
    def invoked_action(self) -> bool:
        return self.outcome == StepOutcomeKind.RAN and self.action is not None


class UndoEffect(str, Enum):
    REMOVED = "removed"
    ALREADY_ABSENT = "already_absent"
    RESTORED = "restored"
    DELETED = "deleted"
    ALREADY_REVERTED = "already_reverted"


class ReversalResult(BaseModel):
    """What a subtype handler did to the live system."""

    target: str
    effect: UndoEffect
    warnings: list[str] = Field(default_factory=list)
    restarted_services: list[str] = Field(default_factory=list)
    failed_services: list[str] = Field(default_factory=list)


class UndoReport(ReversalResult):
    step_id: str
    description: str
    subtype: StepSubtype
    undone_at: str


class UndoableStep(BaseModel):
    step_id: str
    description: str
    subtype: StepSubtype


__all__ = [
    "ActionResult",
    "StepOutcomeKind",
    "StepOutcome",
    "UndoEffect",
    "ReversalResult",
    "UndoReport",
    "UndoableStep",
]
