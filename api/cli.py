from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Sequence

import orjson

from config.settings import Settings, settings as global_settings
from core.errors import SetupStateError
from infra.logging_utils import configure_logging
from infra.observer import StepObserver
from infra.system import HomebrewMacSystem, SystemCapabilities
from schemas.state import StepSubtype
from steps.gate import ExecutionGate
from steps.manual import ConsolePrompter, ManualStepPrompter
from steps.registry import StepRegistry
from store.event_store import EventStore
from store.state_store import StateStore
from task.messages import format_failure, format_step_outcome, format_undo_report, format_undoable
from task.runner import FailurePolicy, SetupRunner, load_plan
from undo.engine import UndoEngine

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STEP_FAILED = 1
# One exit code per error kind; the JSON error line on stderr carries the kind as well.
EXIT_CODES: dict[str, int] = {
    "action_failed": 1,
    "validation": 2,
    "not_found": 3,
    "not_reversible": 4,
    "unsupported_subtype": 5,
    "illegal_transition": 6,
    "missing_params": 7,
    "ambiguous_target": 8,
    "declined": 9,
    "storage": 10,
    "corruption": 11,
}


@dataclass
class Stack:
    store: StateStore
    registry: StepRegistry
    gate: ExecutionGate
    prompter: ManualStepPrompter
    undo: UndoEngine


def build_stack(app_settings: Settings, system: SystemCapabilities | None = None) -> Stack:
    """Wire the engine from explicit settings; nothing below this reads the environment."""

    store = StateStore(app_settings.state_path())
    store.initialize()
    observer = StepObserver(EventStore(app_settings.history_db_path()))
    registry = StepRegistry(store, observer=observer)
    gate = ExecutionGate(registry)
    prompter = ManualStepPrompter(registry, ConsolePrompter())
    undo = UndoEngine(store, system or HomebrewMacSystem(), observer=observer)
    return Stack(store=store, registry=registry, gate=gate, prompter=prompter, undo=undo)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="machine-setup", description="Idempotent machine setup steps with undo.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the state document if it does not exist")

    run = sub.add_parser("run", help="Run every step of a JSON setup plan")
    run.add_argument("plan", help="Path to the plan file")
    run.add_argument("--only", metavar="STEP_ID", help="Run (or re-apply) a single step of the plan")
    run.add_argument(
        "--continue-on-error",
        action="store_true",
        default=None,
        help="Keep going after a failed step instead of stopping",
    )

    status = sub.add_parser("status", help="Show the status of one step")
    status.add_argument("step_id")

    listing = sub.add_parser("list-undoable", help="List completed steps that can be undone")
    listing.add_argument("--json", action="store_true", help="Emit JSON instead of tab-separated lines")

    undo = sub.add_parser("undo", help="Reverse a completed step")
    undo.add_argument("step_id")
    undo.add_argument(
        "--subtype",
        choices=[s.value for s in StepSubtype if s.reversible],
        help="Require the step to be of this subtype",
    )
    return parser


def _emit_error(exc: SetupStateError, color: bool) -> int:
    sys.stderr.write(format_failure(exc.step_id, exc.kind, exc.message, color=color) + "\n")
    sys.stderr.write(orjson.dumps(exc.to_dict()).decode("utf-8") + "\n")
    return EXIT_CODES.get(exc.kind, EXIT_STEP_FAILED)


def _cmd_run(stack: Stack, args: argparse.Namespace, app_settings: Settings, color: bool) -> int:
    continue_on_error = app_settings.continue_on_error if args.continue_on_error is None else args.continue_on_error
    runner = SetupRunner(
        stack.gate,
        stack.prompter,
        policy=FailurePolicy.CONTINUE if continue_on_error else FailurePolicy.ABORT,
    )
    report = runner.run(load_plan(args.plan), only=args.only)
    for outcome in report.outcomes:
        print(format_step_outcome(outcome, reapply_hint=app_settings.reapply_hint, color=color))
    for failure in report.failures:
        sys.stderr.write(format_failure(failure.step_id, failure.kind, failure.message, color=color) + "\n")
        sys.stderr.write(orjson.dumps(failure.model_dump()).decode("utf-8") + "\n")
    if report.failures:
        return EXIT_CODES.get(report.failures[0].kind, EXIT_STEP_FAILED)
    return EXIT_OK


def main(argv: Sequence[str] | None = None, *, app_settings: Settings | None = None, system: SystemCapabilities | None = None) -> int:
    args = build_parser().parse_args(argv)
    app_settings = app_settings or global_settings
    configure_logging(app_settings.resolved_log_path(), level=app_settings.log_level, also_console=False)
    color = sys.stdout.isatty()

    try:
        stack = build_stack(app_settings, system)
        if args.command == "init":
            stack.store.initialize()
            print(str(stack.store.path))
            return EXIT_OK
        if args.command == "run":
            return _cmd_run(stack, args, app_settings, color)
        if args.command == "status":
            print(stack.registry.get_status(args.step_id).value)
            return EXIT_OK
        if args.command == "list-undoable":
            steps = stack.undo.list_undoable()
            if args.json:
                print(orjson.dumps([s.model_dump(mode="json") for s in steps]).decode("utf-8"))
            else:
                for line in format_undoable(steps):
                    print(line)
            return EXIT_OK
        if args.command == "undo":
            report = stack.undo.undo(args.step_id, expected_subtype=args.subtype)
            for line in format_undo_report(report, color=color):
                print(line)
            return EXIT_OK
    except SetupStateError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return _emit_error(exc, color)
    return EXIT_STEP_FAILED


if __name__ == "__main__":
    sys.exit(main())
