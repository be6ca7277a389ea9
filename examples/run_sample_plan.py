from __future__ import annotations

import argparse
import tempfile
from pathlib import Path

from config.settings import Settings
from schemas.outcomes import ActionResult
from steps.gate import Action, ExecutionGate
from steps.manual import ConsolePrompter, ManualStepPrompter
from steps.registry import StepRegistry
from store.state_store import StateStore
from task.messages import format_step_outcome
from task.runner import FailurePolicy, SetupRunner, load_plan

HERE = Path(__file__).resolve().parent


def dry_action(command) -> Action:
    """Print the command instead of running it."""

    def _run() -> ActionResult:
        print("would run:", command)
        return ActionResult(exit_code=0)

    return _run


def main() -> None:
    parser = argparse.ArgumentParser(description="Walk the sample plan twice against a throwaway state document.")
    parser.add_argument("plan", nargs="?", default=str(HERE / "sample_plan.json"))
    args = parser.parse_args()

    plan = load_plan(args.plan)
    with tempfile.TemporaryDirectory(prefix="machine_setup_") as tmp:
        app_settings = Settings(prefix=tmp)
        registry = StepRegistry(StateStore(app_settings.state_path()))
        runner = SetupRunner(
            ExecutionGate(registry),
            ManualStepPrompter(registry, ConsolePrompter()),
            policy=FailurePolicy.CONTINUE,
            action_factory=dry_action,
        )
        for attempt in (1, 2):
            print(f"--- pass {attempt} ---")
            report = runner.run(plan)
            for outcome in report.outcomes:
                print(format_step_outcome(outcome, reapply_hint=app_settings.reapply_hint))
        print("State document:", app_settings.state_path())
        print(app_settings.state_path().read_text(encoding="utf-8"))


if __name__ == "__main__":
    main()
