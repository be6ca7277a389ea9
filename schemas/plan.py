from typing import Any

from pydantic import BaseModel, Field, model_validator

from schemas.state import StepKind, StepSubtype


class StepSpec(BaseModel):
    """One entry of a setup plan: what to run and how to track it."""

    id: str = Field(min_length=1)
    description: str
    kind: StepKind = StepKind.AUTOMATED
    subtype: StepSubtype = StepSubtype.OTHER
    command: str | list[str] | None = None
    instructions: list[str] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _automated_steps_need_a_command(self) -> "StepSpec":
        if self.kind == StepKind.AUTOMATED and not self.command:
            raise ValueError(f"automated step {self.id!r} requires a command")
        return self


class SetupPlan(BaseModel):
    steps: list[StepSpec]

    @model_validator(mode="after")
    def _unique_ids(self) -> "SetupPlan":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id in plan: {step.id!r}")
            seen.add(step.id)
        return self

    def get(self, step_id: str) -> StepSpec | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


__all__ = ["StepSpec", "SetupPlan"]
