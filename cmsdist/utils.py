"""Utility functions for command execution and logging."""

import getpass
import logging
import subprocess
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

logger = logging.getLogger("cmsdist")

# Variables that leak the host runtime's interpreter into child processes
HOST_RUNTIME_VARIABLES = ("PYTHONPATH", "PYTHONHOME", "VIRTUAL_ENV", "RUBYOPT", "RUBYLIB")
HOST_RUNTIME_PREFIXES = ("BUNDLE_", "GEM_")


class ColorFormatter(logging.Formatter):
    """Level-coloured formatter for terminal output."""

    COLORS = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True) -> None:
        super().__init__(fmt="[%(asctime)s] %(levelname)s: %(message)s", datefmt="%H:%M:%S")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        color = self.COLORS.get(record.levelno, "") if self.use_color else ""
        return f"{color}{formatted}{self.RESET}" if color else formatted


def setup_logging(verbose: bool = False) -> None:
    """Configure logging; colour only when stderr is a terminal."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ColorFormatter(use_color=sys.stderr.isatty()))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=[handler])


def run(
    cmd: Sequence[str],
    *,
    check: bool = True,
    capture: bool = False,
    merge_output: bool = False,
    env: Mapping[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a command with logging.

    With ``merge_output`` stderr is folded into stdout so the caller gets a
    single stream in ``result.stdout``.
    """
    logger.debug("Running: %s", " ".join(cmd))
    if merge_output:
        return subprocess.run(
            cmd,
            check=check,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=None if env is None else dict(env),
        )
    return subprocess.run(
        cmd,
        check=check,
        capture_output=capture,
        text=True,
        env=None if env is None else dict(env),
    )


def as_user(user: str) -> list[str]:
    """Return the command prefix that runs a command as ``user``."""
    if getpass.getuser() == user:
        return []
    return ["sudo", "-u", user]


def clean_environment(environ: Mapping[str, str]) -> dict[str, str]:
    """Copy ``environ`` without the host runtime's interpreter variables."""
    return {
        key: value
        for key, value in environ.items()
        if key not in HOST_RUNTIME_VARIABLES and not key.startswith(HOST_RUNTIME_PREFIXES)
    }


def ensure_dir(path: str | Path) -> Path:
    """Ensure directory exists."""
    p = Path(path).expanduser()
    p.mkdir(parents=True, exist_ok=True)
    return p
