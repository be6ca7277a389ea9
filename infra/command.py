from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)

# Conventional shell exit status for "command not found".
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def split_command(command: str | Sequence[str]) -> list[str]:
    if isinstance(command, str):
        if not command.strip():
            raise ValueError("command must be a non-empty string")
        return shlex.split(command)
    argv = list(command)
    if not argv:
        raise ValueError("command must be a non-empty argv")
    return argv


def run_cmd(
    argv: str | Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    capture: bool = True,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command; output is logged at DEBUG.
    - Never raises on a non-zero exit; callers decide what failure means.
    - A missing executable is reported as exit status 127.
    - No timeout is imposed.
    """

    argv_list = split_command(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            shell=False,
            text=True,
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.PIPE if capture else None,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
            check=False,
        )
    except FileNotFoundError as exc:
        logger.warning("Executable not found: %s", argv_list[0])
        return CmdResult(argv=argv_list, returncode=COMMAND_NOT_FOUND, stdout="", stderr=str(exc))

    stdout = p.stdout or ""
    stderr = p.stderr or ""
    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=stdout, stderr=stderr)


__all__ = ["CmdResult", "COMMAND_NOT_FOUND", "fmt_argv", "split_command", "run_cmd"]
