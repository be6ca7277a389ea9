from __future__ import annotations

import pytest

from infra.command import COMMAND_NOT_FOUND, run_cmd, split_command
from infra.system import HomebrewMacSystem


class FakeCompleted:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_run_cmd_uses_argv_without_shell(monkeypatch):
    captured = {}

    def fake_run(argv, **kwargs):
        captured["argv"] = argv
        captured.update(kwargs)
        return FakeCompleted(0, "hi\n", "")

    monkeypatch.setattr("infra.command.subprocess.run", fake_run)

    result = run_cmd("echo 'hi there'")

    assert captured["argv"] == ["echo", "hi there"]
    assert captured["shell"] is False
    assert captured["check"] is False
    assert "timeout" not in captured
    assert result.ok
    assert result.stdout == "hi\n"


def test_missing_executable_maps_to_127(monkeypatch):
    def fake_run(argv, **kwargs):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr("infra.command.subprocess.run", fake_run)

    result = run_cmd(["definitely-not-installed"])

    assert result.returncode == COMMAND_NOT_FOUND
    assert not result.ok


def test_split_command_rejects_empty():
    with pytest.raises(ValueError):
        split_command("   ")
    with pytest.raises(ValueError):
        split_command([])


def test_homebrew_mac_system_argv(monkeypatch):
    calls = []

    def fake_run(argv, **kwargs):
        calls.append(argv)
        if argv[:2] == ["defaults", "read"]:
            return FakeCompleted(1, "", "does not exist")
        if argv[0] == "killall":
            return FakeCompleted(1, "", "No matching processes")
        return FakeCompleted(0, "", "")

    monkeypatch.setattr("infra.command.subprocess.run", fake_run)
    system = HomebrewMacSystem()

    assert system.is_package_installed("wezterm", cask=True)
    system.uninstall_package("git")
    assert system.read_default("com.apple.dock", "orientation") is None
    system.write_default("com.apple.dock", "orientation", "-string", "bottom")
    system.delete_default("com.apple.dock", "autohide")
    assert system.restart_service("Dock") is False

    assert calls == [
        ["brew", "list", "--cask", "wezterm"],
        ["brew", "uninstall", "git"],
        ["defaults", "read", "com.apple.dock", "orientation"],
        ["defaults", "write", "com.apple.dock", "orientation", "-string", "bottom"],
        ["defaults", "delete", "com.apple.dock", "autohide"],
        ["killall", "Dock"],
    ]
