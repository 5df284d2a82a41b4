"""Append-only, timestamped session log sink."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from askshell.agent.models import Session

LOGGER = logging.getLogger(__name__)

TAG_SESSION = "SESSION"
TAG_GOAL = "GOAL"
TAG_API = "API"
TAG_COMMAND = "COMMAND"
TAG_CONFIRM = "CONFIRM"
TAG_EXEC = "EXEC"
TAG_OUTPUT = "OUTPUT"
TAG_REFUSAL = "REFUSAL"
TAG_ERROR = "ERROR"

EMPTY_OUTPUT_MARKER = "(no output)"


def log_file_name(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return f"askshell-{stamp}.log"


def create_log_path(log_dir: str | Path, now: datetime | None = None) -> Path:
    """Return the per-run log file path, creating the directory when possible."""
    directory = Path(log_dir).expanduser()
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("log_dir_unavailable", extra={"log_dir": str(directory), "error": str(exc)})
    return directory / log_file_name(now)


class SessionLog:
    """Writes one timestamped, tagged record per call to the log sink.

    When the session is in debug mode each record is mirrored to the error
    stream. A sink that cannot be written to never stops the session: the
    record is printed to the error stream instead.
    """

    def __init__(
        self,
        path: str | Path,
        session: Session,
        *,
        stream: TextIO | None = None,
    ) -> None:
        self.path = Path(path)
        self.session = session
        self.stream = stream

    @property
    def _err(self) -> TextIO:
        return self.stream if self.stream is not None else sys.stderr

    def write(self, tag: str, message: str, *, mirror: bool = True) -> None:
        line = self.format_record(tag, message)
        try:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError:
            print(line, file=self._err)
            return
        if mirror and self.session.debug_mode:
            print(line, file=self._err)

    def debug(self, tag: str, message: str) -> None:
        """Record diagnostic detail that is only wanted in debug mode."""
        if self.session.debug_mode:
            self.write(tag, message)

    @staticmethod
    def format_record(tag: str, message: str, now: datetime | None = None) -> str:
        timestamp = (now or datetime.now()).strftime("%Y-%m-%dT%H:%M:%S")
        first, *rest = message.splitlines() or [""]
        lines = [f"{timestamp} [{tag}] {first}"]
        lines.extend(f"  {line}" for line in rest)
        return "\n".join(lines)
