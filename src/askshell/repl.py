"""Interactive read loop that feeds goals into the turn pipeline."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Protocol, TextIO

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory, InMemoryHistory

from askshell.agent.pipeline import TurnPipeline, on_off
from askshell.session_log import TAG_SESSION, SessionLog

LOGGER = logging.getLogger(__name__)
PROMPT = "askshell> "


class LineReader(Protocol):
    def read_line(self) -> str:
        """Return the next line; raise ``EOFError`` at end of input."""
        ...


class PromptLineReader:
    """Line editor with persistent history for interactive terminals."""

    def __init__(self, history_file: str | Path | None = None, *, prompt: str = PROMPT) -> None:
        self.prompt = prompt
        self.session: PromptSession[str] = PromptSession(
            history=_open_history(history_file),
            auto_suggest=AutoSuggestFromHistory(),
        )

    def read_line(self) -> str:
        return self.session.prompt(self.prompt)


class StreamLineReader:
    """Reads goals line by line from a redirected input stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream if stream is not None else sys.stdin

    def read_line(self) -> str:
        line = self.stream.readline()
        if not line:
            raise EOFError
        return line.rstrip("\n")


def _open_history(history_file: str | Path | None) -> FileHistory | InMemoryHistory:
    if history_file is None:
        return InMemoryHistory()
    path = Path(history_file).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)
    except OSError as exc:
        LOGGER.warning("history_file_unavailable", extra={"path": str(path), "error": str(exc)})
        return InMemoryHistory()
    return FileHistory(str(path))


def create_line_reader(history_file: str | Path | None) -> LineReader:
    if sys.stdin.isatty():
        return PromptLineReader(history_file)
    return StreamLineReader()


class InteractiveShell:
    """Repeats read-goal/process-turn until end of input or ``exit``."""

    def __init__(
        self,
        *,
        pipeline: TurnPipeline,
        reader: LineReader,
        log: SessionLog,
        stdout: TextIO | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.reader = reader
        self.log = log
        self._stdout = stdout

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    def run(self) -> int:
        session = self.pipeline.session
        self.log.write(
            TAG_SESSION,
            f"session started (debug={on_off(session.debug_mode)},"
            f" confirmation={on_off(session.confirm_mode)})",
        )
        print(self.banner(), file=self.stdout)

        reason = "end of input"
        while True:
            try:
                line = self.reader.read_line()
            except KeyboardInterrupt:
                continue
            except EOFError:
                print(file=self.stdout)
                break
            self.pipeline.process(line)
            if self.pipeline.exit_requested:
                reason = "exit requested"
                break

        self.log.write(TAG_SESSION, f"session ended ({reason})")
        return 0

    def banner(self) -> str:
        session = self.pipeline.session
        lines = [
            "askshell: describe what you want to do; the command is generated for you.",
            (
                f"debug: {on_off(session.debug_mode)} | "
                f"confirmation: {on_off(session.confirm_mode)}"
            ),
            "Type 'exit' or 'quit' to leave, 'set debug=on|off' or 'set confirmation=on|off'.",
        ]
        if session.log_path is not None:
            lines.append(f"log: {session.log_path}")
        return "\n".join(lines)
