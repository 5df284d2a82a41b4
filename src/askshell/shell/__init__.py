"""Shell adapter implementations."""

import shutil

from askshell.session_log import SessionLog

from .base import CommandResult, ShellAdapter
from .bash_adapter import BashAdapter


def create_shell_adapter(shell_name: str, *, log: SessionLog) -> ShellAdapter:
    normalized = shell_name.strip().lower()
    if normalized == "bash":
        return BashAdapter(log=log)
    if normalized == "sh":
        return BashAdapter(executable="sh", log=log)
    msg = f"Unsupported shell adapter: {shell_name}"
    raise ValueError(msg)


def shell_available(shell_name: str) -> bool:
    """Return true when the interpreter for ``shell_name`` is on PATH."""
    normalized = shell_name.strip().lower()
    if normalized == "bash":
        return shutil.which("bash") is not None or shutil.which("sh") is not None
    return shutil.which(normalized) is not None


__all__ = [
    "BashAdapter",
    "CommandResult",
    "ShellAdapter",
    "create_shell_adapter",
    "shell_available",
]
