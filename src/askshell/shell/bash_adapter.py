"""Bash shell adapter implementation."""

from __future__ import annotations

import locale
import shutil
import subprocess
from typing import TextIO

from askshell.session_log import TAG_OUTPUT, SessionLog

from .base import CommandResult, ShellAdapter


class BashAdapter(ShellAdapter):
    """Adapter for command execution via ``bash``/``sh``."""

    def __init__(
        self,
        executable: str | None = None,
        *,
        log: SessionLog,
        fallback_to_sh: bool = True,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        super().__init__(log=log, stdout=stdout, stderr=stderr)
        self.executable = executable or default_executable(fallback_to_sh=fallback_to_sh)

    @property
    def name(self) -> str:
        return "bash"

    def execute(self, command: str, *, verbose: bool = False) -> CommandResult:
        self.log_request(command, verbose=verbose)
        started = self.monotonic_now()
        try:
            if verbose:
                result = self._run_streaming(command)
            else:
                result = self._run_buffered(command)
        except OSError as exc:
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=127,
                output=f"{self.name} executable could not be started ({self.executable}): {exc}",
                executed=False,
            )
            print(result.output, file=self.stderr)
        except ValueError as exc:
            result = CommandResult(
                command=command,
                shell=self.name,
                returncode=126,
                output=f"command could not be passed to {self.name}: {exc}",
                executed=False,
            )
            print(result.output, file=self.stderr)
        result.duration_seconds = self.monotonic_now() - started
        self.log_result(result)
        return result

    def _run_buffered(self, command: str) -> CommandResult:
        process = subprocess.run(
            [self.executable, "-c", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
        output = _normalize_output(process.stdout)
        returncode = self.normalize_returncode(process.returncode)
        if output:
            self.stdout.write(output if output.endswith("\n") else f"{output}\n")
            self.stdout.flush()
        if returncode != 0:
            print(f"Command exited with status {returncode}.", file=self.stderr)
        return CommandResult(
            command=command,
            shell=self.name,
            returncode=returncode,
            output=output,
        )

    def _run_streaming(self, command: str) -> CommandResult:
        # Each line goes to the operator and the log sink as it arrives; the
        # status comes from the interpreter process itself, not the reader.
        process = subprocess.Popen(
            [self.executable, "-c", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        assert process.stdout is not None
        with process.stdout:
            for raw_line in iter(process.stdout.readline, b""):
                line = _normalize_output(raw_line)
                self.stderr.write(line)
                self.stderr.flush()
                self.log.write(TAG_OUTPUT, line.rstrip("\r\n"), mirror=False)
        returncode = self.normalize_returncode(process.wait())
        print(f"exit status: {returncode}", file=self.stderr)
        return CommandResult(
            command=command,
            shell=self.name,
            returncode=returncode,
            output=None,
            streamed=True,
        )


def default_executable(*, fallback_to_sh: bool) -> str:
    if shutil.which("bash"):
        return "bash"
    if fallback_to_sh and shutil.which("sh"):
        return "sh"
    return "bash"


def _normalize_output(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload

    for encoding in ("utf-8", "utf-8-sig", locale.getpreferredencoding(False)):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")
