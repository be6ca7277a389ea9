from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"
FALLBACK_LOG_NAME = "machine-setup.log"


def configure_logging(
    log_path: str | Path,
    level: int | str = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure root logging once and return the log file actually used.

    If ``log_path`` cannot be opened, logs go to a file in the current working
    directory instead.
    """

    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, "_machine_setup_configured", False):
        return getattr(root, "_machine_setup_log_path", str(log_path))

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers: list[logging.Handler] = []

    chosen_path = str(log_path)
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(chosen_path)
    except OSError:
        chosen_path = str(Path.cwd() / FALLBACK_LOG_NAME)
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console.setLevel(logging.WARNING)
        handlers.append(console)

    for handler in handlers:
        root.addHandler(handler)

    setattr(root, "_machine_setup_configured", True)
    setattr(root, "_machine_setup_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path


__all__ = ["configure_logging", "LOG_FORMAT"]
