"""Base shell adapter primitives."""

from __future__ import annotations

import abc
import logging
import re
import sys
import time
from dataclasses import dataclass
from typing import TextIO

from askshell.session_log import SessionLog

LOGGER = logging.getLogger(__name__)

_SECRET_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(--?(?:password|token|secret|api[-_]?key)\s+)([^\s]+)",
        r"((?:password|token|secret|api[-_]?key)\s*=\s*)([^\s]+)",
    )
]


@dataclass(slots=True)
class CommandResult:
    """Result of a command execution.

    ``output`` holds stdout and stderr interleaved in production order, or
    ``None`` when the output was streamed rather than buffered.
    """

    command: str
    shell: str
    returncode: int
    output: str | None
    streamed: bool = False
    duration_seconds: float = 0.0
    executed: bool = True


class ShellAdapter(abc.ABC):
    """Abstract adapter that hands a command line to the host interpreter."""

    def __init__(
        self,
        *,
        log: SessionLog,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.log = log
        self._stdout = stdout
        self._stderr = stderr

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def stderr(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Friendly shell adapter name."""

    @abc.abstractmethod
    def execute(self, command: str, *, verbose: bool = False) -> CommandResult:
        """Run ``command`` exactly once and report its own exit status."""

    def log_request(self, command: str, *, verbose: bool) -> None:
        LOGGER.debug(
            "command_request",
            extra={
                "shell": self.name,
                "command": self._sanitize_command(command),
                "verbose": verbose,
            },
        )

    def log_result(self, result: CommandResult) -> None:
        LOGGER.debug(
            "command_result",
            extra={
                "shell": result.shell,
                "returncode": result.returncode,
                "duration_seconds": round(result.duration_seconds, 4),
                "executed": result.executed,
                "streamed": result.streamed,
                "output_length": len(result.output or ""),
            },
        )

    @staticmethod
    def monotonic_now() -> float:
        return time.monotonic()

    @staticmethod
    def normalize_returncode(returncode: int) -> int:
        """Report death by signal ``n`` as ``128 + n`` like a POSIX shell."""
        if returncode < 0:
            return 128 - returncode
        return returncode

    def _sanitize_command(self, command: str) -> str:
        sanitized = command
        for pattern in _SECRET_PATTERNS:
            sanitized = pattern.sub(r"\1***", sanitized)
        return sanitized
