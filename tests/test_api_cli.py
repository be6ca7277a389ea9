from __future__ import annotations

import orjson
import pytest

from api.cli import EXIT_CODES, main
from config.settings import Settings
from store.state_store import StateStore
from steps.registry import StepRegistry


@pytest.fixture
def app_settings(tmp_path) -> Settings:
    return Settings(prefix=str(tmp_path / "prefix"), log_path=str(tmp_path / "setup.log"))


def _last_json_line(text: str) -> dict:
    return orjson.loads(text.strip().splitlines()[-1])


def test_init_creates_state_document(app_settings, capsys):
    assert main(["init"], app_settings=app_settings) == 0

    assert app_settings.state_path().exists()
    assert str(app_settings.state_path()) in capsys.readouterr().out


def test_status_of_unknown_step_reports_kind(app_settings, capsys):
    code = main(["status", "nope"], app_settings=app_settings)

    assert code == EXIT_CODES["not_found"]
    error = _last_json_line(capsys.readouterr().err)
    assert error["error"] == "not_found"
    assert error["step_id"] == "nope"


def test_run_plan_then_undo(app_settings, tmp_path, capsys, monkeypatch, system):
    monkeypatch.setattr("task.runner.shell_action", lambda command: (lambda: 0))
    plan = tmp_path / "plan.json"
    plan.write_bytes(
        orjson.dumps(
            {
                "steps": [
                    {
                        "id": "brew-install-git",
                        "description": "Install git",
                        "subtype": "brew",
                        "command": "brew install git",
                        "params": {"package": "git"},
                    }
                ]
            }
        )
    )
    system.packages.add("git")

    assert main(["run", str(plan)], app_settings=app_settings, system=system) == 0
    assert main(["status", "brew-install-git"], app_settings=app_settings, system=system) == 0
    assert capsys.readouterr().out.strip().splitlines()[-1] == "complete"

    assert main(["list-undoable", "--json"], app_settings=app_settings, system=system) == 0
    listed = orjson.loads(capsys.readouterr().out)
    assert listed == [{"step_id": "brew-install-git", "description": "Install git", "subtype": "brew"}]

    assert main(["undo", "brew-install-git", "--subtype", "brew"], app_settings=app_settings, system=system) == 0
    assert "git" not in system.packages

    assert main(["run", str(plan)], app_settings=app_settings, system=system) == 0
    assert "[undone] Install git" in capsys.readouterr().out

    code = main(["undo", "brew-install-git"], app_settings=app_settings, system=system)
    assert code == EXIT_CODES["not_reversible"]


def test_run_failure_exit_code(app_settings, tmp_path, capsys, monkeypatch):
    monkeypatch.setattr("task.runner.shell_action", lambda command: (lambda: 5))
    plan = tmp_path / "plan.json"
    plan.write_bytes(orjson.dumps({"steps": [{"id": "x", "description": "X", "command": "false"}]}))

    code = main(["run", str(plan)], app_settings=app_settings)

    assert code == EXIT_CODES["action_failed"]
    failure = _last_json_line(capsys.readouterr().err)
    assert failure["kind"] == "action_failed"
    assert failure["exit_code"] == 5
    registry = StepRegistry(StateStore(app_settings.state_path()))
    assert not registry.is_complete("x")


def test_corrupt_state_is_reported(app_settings, capsys):
    path = app_settings.state_path()
    path.parent.mkdir(parents=True)
    path.write_text("garbage", encoding="utf-8")

    code = main(["list-undoable"], app_settings=app_settings)

    assert code == EXIT_CODES["corruption"]
    assert path.read_text(encoding="utf-8") == "garbage"


def test_unwritable_prefix_is_a_storage_error(tmp_path, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    broken = Settings(prefix=str(blocker / "prefix"), log_path=str(tmp_path / "setup.log"))

    code = main(["init"], app_settings=broken)

    assert code == EXIT_CODES["storage"] == 10
    assert _last_json_line(capsys.readouterr().err)["error"] == "storage"
