from __future__ import annotations

from typing import Any


class SetupStateError(Exception):
    """Base error for the step state engine.

    ``kind`` is the machine-readable error name surfaced to callers (and used by
    the CLI to pick an exit code); ``step_id`` names the step involved, if any.
    """

    kind = "setup_error"

    def __init__(self, message: str, *, step_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.step_id = step_id

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message, "step_id": self.step_id}


class ValidationError(SetupStateError):
    kind = "validation"


class NotFoundError(SetupStateError):
    kind = "not_found"


class NotReversibleError(SetupStateError):
    kind = "not_reversible"


class UnsupportedSubtypeError(NotReversibleError):
    kind = "unsupported_subtype"


class IllegalTransitionError(SetupStateError):
    kind = "illegal_transition"


class MissingParamsError(SetupStateError):
    kind = "missing_params"


class AmbiguousTargetError(SetupStateError):
    kind = "ambiguous_target"


class ActionFailedError(SetupStateError):
    kind = "action_failed"

    def __init__(self, message: str, *, step_id: str | None = None, exit_code: int | None = None) -> None:
        super().__init__(message, step_id=step_id)
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["exit_code"] = self.exit_code
        return data


class ManualStepDeclinedError(SetupStateError):
    kind = "declined"


class StorageError(SetupStateError):
    kind = "storage"


class CorruptionError(SetupStateError):
    kind = "corruption"


__all__ = [
    "SetupStateError",
    "ValidationError",
    "NotFoundError",
    "NotReversibleError",
    "UnsupportedSubtypeError",
    "IllegalTransitionError",
    "MissingParamsError",
    "AmbiguousTargetError",
    "ActionFailedError",
    "ManualStepDeclinedError",
    "StorageError",
    "CorruptionError",
]
