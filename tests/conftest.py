from __future__ import annotations

from pathlib import Path

import pytest

from infra.command import CmdResult
from steps.gate import ExecutionGate
from steps.registry import StepRegistry
from store.state_store import StateStore
from undo.engine import UndoEngine


class FakeSystem:
    """In-memory stand-in for brew/defaults/killall."""

    def __init__(self) -> None:
        self.packages: set[str] = set()
        self.casks: set[str] = set()
        self.defaults: dict[tuple[str, str], str] = {}
        self.running_services: set[str] = {"Dock", "Finder", "SystemUIServer"}
        self.fail_uninstall = False
        self.fail_defaults_write = False
        self.calls: list[tuple] = []

    @staticmethod
    def _result(argv: list[str], ok: bool) -> CmdResult:
        return CmdResult(argv=argv, returncode=0 if ok else 1, stdout="", stderr="" if ok else "failed")

    def is_package_installed(self, name: str, cask: bool = False) -> bool:
        self.calls.append(("is_installed", name, cask))
        return name in (self.casks if cask else self.packages)

    def uninstall_package(self, name: str, cask: bool = False) -> CmdResult:
        self.calls.append(("uninstall", name, cask))
        if self.fail_uninstall:
            return self._result(["brew", "uninstall", name], False)
        (self.casks if cask else self.packages).discard(name)
        return self._result(["brew", "uninstall", name], True)

    def read_default(self, domain: str, key: str) -> str | None:
        self.calls.append(("read_default", domain, key))
        return self.defaults.get((domain, key))

    def write_default(self, domain: str, key: str, type_flag: str, value: str) -> CmdResult:
        self.calls.append(("write_default", domain, key, type_flag, value))
        if self.fail_defaults_write:
            return self._result(["defaults", "write", domain, key], False)
        self.defaults[(domain, key)] = value
        return self._result(["defaults", "write", domain, key], True)

    def delete_default(self, domain: str, key: str) -> CmdResult:
        self.calls.append(("delete_default", domain, key))
        self.defaults.pop((domain, key), None)
        return self._result(["defaults", "delete", domain, key], True)

    def restart_service(self, name: str) -> bool:
        self.calls.append(("restart", name))
        return name in self.running_services


class FixedClock:
    def __init__(self, *stamps: str) -> None:
        self.stamps = list(stamps) or ["2025-11-24T12:00:00Z"]
        self.index = 0

    def __call__(self) -> str:
        stamp = self.stamps[min(self.index, len(self.stamps) - 1)]
        self.index += 1
        return stamp


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "prefix" / "state.json"


@pytest.fixture
def store(state_path: Path) -> StateStore:
    return StateStore(state_path)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock("2025-11-24T12:00:00Z", "2025-11-24T12:05:00Z", "2025-11-24T12:10:00Z")


@pytest.fixture
def registry(store: StateStore, clock: FixedClock) -> StepRegistry:
    return StepRegistry(store, clock=clock)


@pytest.fixture
def gate(registry: StepRegistry) -> ExecutionGate:
    return ExecutionGate(registry)


@pytest.fixture
def system() -> FakeSystem:
    return FakeSystem()


@pytest.fixture
def undo_engine(store: StateStore, system: FakeSystem, clock: FixedClock) -> UndoEngine:
    return UndoEngine(store, system, clock=clock)
