from __future__ import annotations

from schemas.outcomes import StepOutcome, StepOutcomeKind, UndoableStep, UndoReport

GRAY = "90"
YELLOW = "33"
BLUE = "34"
RED = "31"
GREEN = "32"


def _paint(text: str, code: str, color: bool) -> str:
    if not color:
        return text
    return f"\033[{code}m{text}\033[0m"


def format_step_outcome(outcome: StepOutcome, *, reapply_hint: str, color: bool = False) -> str:
    if outcome.outcome == StepOutcomeKind.SKIPPED:
        return _paint(f"[skip] {outcome.description}", GRAY, color)
    if outcome.outcome == StepOutcomeKind.UNDONE_AVAILABLE:
        hint = reapply_hint.format(step_id=outcome.step_id)
        return f"{_paint('[undone]', YELLOW, color)} {outcome.description} - run '{hint}' to re-apply"
    if outcome.outcome == StepOutcomeKind.DEFERRED:
        return f"{_paint('[later]', YELLOW, color)} {outcome.description} (will prompt again next time)"
    return f"{_paint('[done]', GREEN, color)} {outcome.description}"


def format_undo_report(report: UndoReport, *, color: bool = False) -> list[str]:
    lines = [
        f"{_paint('[undo]', BLUE, color)} {report.description} ({report.subtype.value}: {report.target}, {report.effect.value})"
    ]
    for warning in report.warnings:
        lines.append(f"{_paint('[WARN]', YELLOW, color)} {warning}")
    if report.restarted_services:
        lines.append(f"{_paint('[INFO]', BLUE, color)} Restarted: {', '.join(report.restarted_services)}")
    return lines


def format_failure(step_id: str | None, kind: str, message: str, *, color: bool = False) -> str:
    label = _paint("[ERROR]", RED, color)
    prefix = f"{step_id}: " if step_id else ""
    return f"{label} {prefix}{message} ({kind})"


def format_undoable(steps: list[UndoableStep]) -> list[str]:
    return [f"{step.step_id}\t{step.description}\t{step.subtype.value}" for step in steps]


__all__ = [
    "format_step_outcome",
    "format_undo_report",
    "format_failure",
    "format_undoable",
]
