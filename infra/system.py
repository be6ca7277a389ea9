from __future__ import annotations

import logging
from typing import Protocol

from infra.command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


class SystemCapabilities(Protocol):
    """Everything the undo handlers may do to the live machine."""

    def is_package_installed(self, name: str, cask: bool = False) -> bool: ...

    def uninstall_package(self, name: str, cask: bool = False) -> CmdResult: ...

    def read_default(self, domain: str, key: str) -> str | None: ...

    def write_default(self, domain: str, key: str, type_flag: str, value: str) -> CmdResult: ...

    def delete_default(self, domain: str, key: str) -> CmdResult: ...

    def restart_service(self, name: str) -> bool: ...


class HomebrewMacSystem:
    """``brew``, ``defaults`` and ``killall`` on a macOS host."""

    def __init__(self, brew: str = "brew", defaults: str = "defaults", killall: str = "killall") -> None:
        self.brew = brew
        self.defaults = defaults
        self.killall = killall

    def _brew_argv(self, verb: str, name: str, cask: bool) -> list[str]:
        argv = [self.brew, verb]
        if cask:
            argv.append("--cask")
        argv.append(name)
        return argv

    def is_package_installed(self, name: str, cask: bool = False) -> bool:
        return run_cmd(self._brew_argv("list", name, cask)).ok

    def uninstall_package(self, name: str, cask: bool = False) -> CmdResult:
        return run_cmd(self._brew_argv("uninstall", name, cask))

    def read_default(self, domain: str, key: str) -> str | None:
        result = run_cmd([self.defaults, "read", domain, key])
        if not result.ok:
            return None
        return result.stdout.strip()

    def write_default(self, domain: str, key: str, type_flag: str, value: str) -> CmdResult:
        return run_cmd([self.defaults, "write", domain, key, type_flag, value])

    def delete_default(self, domain: str, key: str) -> CmdResult:
        return run_cmd([self.defaults, "delete", domain, key])

    def restart_service(self, name: str) -> bool:
        result = run_cmd([self.killall, name])
        if not result.ok:
            logger.debug("killall %s exited %s: %s", name, result.returncode, result.stderr.strip())
        return result.ok


__all__ = ["SystemCapabilities", "HomebrewMacSystem"]
