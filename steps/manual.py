from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Protocol, Sequence

from core.errors import ManualStepDeclinedError
from infra.observer import NullObserver, StepObserver
from schemas.outcomes import StepOutcome, StepOutcomeKind
from schemas.state import StepKind, StepSubtype
from steps.registry import StepRegistry, validate_step_id

logger = logging.getLogger(__name__)


class ManualResponse(str, Enum):
    CONFIRM = "confirm"
    DECLINE = "decline"
    DEFER = "defer"


_RESPONSES = {
    "y": ManualResponse.CONFIRM,
    "yes": ManualResponse.CONFIRM,
    "n": ManualResponse.DECLINE,
    "no": ManualResponse.DECLINE,
    "s": ManualResponse.DEFER,
    "skip": ManualResponse.DEFER,
}


def parse_response(text: str) -> ManualResponse | None:
    return _RESPONSES.get(text.strip().lower())


class Prompter(Protocol):
    def present(self, description: str, instructions: Sequence[str]) -> None: ...

    def ask(self) -> str: ...

    def reject(self, response: str) -> None: ...


class ConsolePrompter:
    def __init__(
        self,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ) -> None:
        self.input_fn = input_fn
        self.output_fn = output_fn

    def present(self, description: str, instructions: Sequence[str]) -> None:
        self.output_fn("")
        self.output_fn("=== Manual Step Required ===")
        self.output_fn("")
        self.output_fn(description)
        self.output_fn("")
        for line in instructions:
            self.output_fn(f"  {line}")
        self.output_fn("")

    def ask(self) -> str:
        return self.input_fn("Complete these steps, then: (y)es to confirm, (n)o to exit, (s)kip for now: ")

    def reject(self, response: str) -> None:
        self.output_fn(f"Invalid response {response!r}. Please enter 'y', 'n', or 's'.")


class ManualStepPrompter:
    """Confirms steps that a human has to perform.

    The prompt repeats until one of confirm/decline/defer is given; there is no
    default answer.
    """

    def __init__(
        self,
        registry: StepRegistry,
        prompter: Prompter,
        observer: StepObserver | NullObserver | None = None,
    ) -> None:
        self.registry = registry
        self.prompter = prompter
        self.observer = observer or registry.observer

    def run_manual_step(self, step_id: str, description: str, instructions: Sequence[str] = ()) -> StepOutcome:
        validate_step_id(step_id)
        if self.registry.is_complete(step_id):
            logger.info("Skipping completed manual step %s", step_id)
            self.observer.record(step_id, "skipped")
            record = self.registry.get(step_id)
            return StepOutcome(
                step_id=step_id,
                description=description,
                outcome=StepOutcomeKind.SKIPPED,
                completed_at=record.completed_at,
            )

        self.prompter.present(description, list(instructions))
        try:
            response = self._await_response()
        except EOFError:
            logger.warning("Input closed while waiting on manual step %s", step_id)
            response = ManualResponse.DECLINE

        if response is ManualResponse.DECLINE:
            logger.warning("Manual step %s declined", step_id)
            self.observer.record(step_id, "declined")
            raise ManualStepDeclinedError(f"Manual step declined: {description}", step_id=step_id)

        if response is ManualResponse.DEFER:
            logger.info("Manual step %s deferred", step_id)
            self.observer.record(step_id, "deferred")
            return StepOutcome(step_id=step_id, description=description, outcome=StepOutcomeKind.DEFERRED)

        self.registry.register(step_id, description, StepKind.MANUAL, StepSubtype.OTHER)
        record = self.registry.mark_complete(step_id)
        return StepOutcome(
            step_id=step_id,
            description=description,
            outcome=StepOutcomeKind.RAN,
            completed_at=record.completed_at,
        )

    def _await_response(self) -> ManualResponse:
        while True:
            raw = self.prompter.ask()
            response = parse_response(raw)
            if response is not None:
                return response
            self.prompter.reject(raw)


__all__ = [
    "ManualResponse",
    "parse_response",
    "Prompter",
    "ConsolePrompter",
    "ManualStepPrompter",
]
