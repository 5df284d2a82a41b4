"""Turn pipeline: one goal from intent capture to logged outcome."""

from __future__ import annotations

import logging
import sys
from typing import Protocol, TextIO

from askshell.agent.models import (
    ApiError,
    Command,
    ConfirmationDecision,
    Empty,
    ExecutionOutcome,
    ModelResult,
    Refusal,
    Session,
    Turn,
)
from askshell.agent.terminal import ConfirmCommandExecution
from askshell.llm.client import REFUSAL_SENTINEL, PayloadError
from askshell.session_log import (
    EMPTY_OUTPUT_MARKER,
    TAG_COMMAND,
    TAG_CONFIRM,
    TAG_ERROR,
    TAG_EXEC,
    TAG_GOAL,
    TAG_REFUSAL,
    TAG_SESSION,
    SessionLog,
)
from askshell.shell import CommandResult

EXIT_COMMANDS = {"exit", "quit"}
MODE_COMMANDS: dict[str, tuple[str, bool]] = {
    "set debug=on": ("debug_mode", True),
    "set debug=off": ("debug_mode", False),
    "set confirmation=on": ("confirm_mode", True),
    "set confirmation=off": ("confirm_mode", False),
}
MODE_LABELS = {"debug_mode": "Debug mode", "confirm_mode": "Confirmation mode"}
STREAMED_OUTPUT_MARKER = "(streamed; see OUTPUT records)"
EXTRACTION_FAILURE = "Error: could not extract a command from the model response."


class CompletionClient(Protocol):
    def complete(self, goal: str) -> ModelResult: ...


class CommandExecutor(Protocol):
    def execute(self, command: str, *, verbose: bool = False) -> CommandResult: ...


def on_off(value: bool) -> str:
    return "on" if value else "off"


class TurnPipeline:
    """Runs one goal through query, classification, confirmation and execution.

    Model output only ever reaches the shell after classification and the
    confirmation gate. The one exception is the refusal sentinel, which is a
    fixed inert ``echo`` and is run from the constant, not from model text.
    """

    def __init__(
        self,
        *,
        session: Session,
        client: CompletionClient,
        shell: CommandExecutor,
        log: SessionLog,
        confirm_command_execution: ConfirmCommandExecution,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self.session = session
        self.client = client
        self.shell = shell
        self.log = log
        self.confirm_command_execution = confirm_command_execution
        self._stdout = stdout
        self._stderr = stderr
        self.exit_requested = False

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def stderr(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    def process(self, raw_goal: str) -> Turn | None:
        """Handle one line of operator input.

        Returns ``None`` for blank input and internal commands, which never
        reach the model. ``exit``/``quit`` set ``exit_requested``.
        """
        goal = raw_goal.strip()
        if not goal:
            return None
        if goal in EXIT_COMMANDS:
            self.exit_requested = True
            return None
        if goal in MODE_COMMANDS:
            attribute, enabled = MODE_COMMANDS[goal]
            self._set_mode(attribute, enabled)
            return None

        turn = Turn(raw_goal=raw_goal, trimmed_goal=goal)
        try:
            self._run_turn(turn)
        except KeyboardInterrupt:
            turn.status = "interrupted"
            self.log.write(TAG_ERROR, "turn interrupted by operator")
            print("\nInterrupted.", file=self.stderr)
        return turn

    def _set_mode(self, attribute: str, enabled: bool) -> None:
        label = MODE_LABELS[attribute]
        if getattr(self.session, attribute) == enabled:
            print(f"{label} is already {on_off(enabled)}.", file=self.stdout)
            return
        setattr(self.session, attribute, enabled)
        if attribute == "debug_mode":
            logging.getLogger().setLevel(logging.DEBUG if enabled else logging.WARNING)
        self.log.write(TAG_SESSION, f"{label.lower()} set to {on_off(enabled)}")
        print(f"{label} is now {on_off(enabled)}.", file=self.stdout)

    def _run_turn(self, turn: Turn) -> None:
        self.log.write(TAG_GOAL, f"goal received: {turn.trimmed_goal}")
        try:
            result = self.client.complete(turn.trimmed_goal)
        except PayloadError as exc:
            turn.status = "internal_error"
            self._report_error(f"Internal error: {exc}")
            return
        turn.model_result = result

        if isinstance(result, ApiError):
            turn.status = "api_error"
            self._report_error(f"OpenAI API returned an error: {result.message}")
            return
        if isinstance(result, Empty):
            turn.status = "empty"
            self._report_error(EXTRACTION_FAILURE)
            return
        if isinstance(result, Refusal):
            self._run_refusal(turn)
            return

        if not isinstance(result, Command):
            turn.status = "internal_error"
            self._report_error(f"Internal error: unexpected model result {result!r}")
            return

        self.log.write(TAG_COMMAND, f"command extracted: {result.text}")
        turn.confirmation = self._confirm(result.text)
        if turn.confirmation == "rejected":
            turn.status = "rejected"
            print("Command not executed.", file=self.stdout)
            return

        confirm_mode = self.session.confirm_mode
        command_result = self.shell.execute(result.text, verbose=self.session.debug_mode)
        turn.outcome = ExecutionOutcome(
            exit_status=command_result.returncode,
            output=command_result.output,
        )
        turn.status = "executed"
        self.log.write(
            TAG_EXEC,
            "\n".join(
                [
                    f"command: {result.text}",
                    f"confirmation: {on_off(confirm_mode)}",
                    f"exit status: {command_result.returncode}",
                    "output:",
                    self._describe_output(command_result),
                ]
            ),
        )

    def _run_refusal(self, turn: Turn) -> None:
        print("The model declined this task as too risky or infeasible.", file=self.stderr)
        command_result = self.shell.execute(REFUSAL_SENTINEL, verbose=False)
        turn.status = "refused"
        turn.outcome = ExecutionOutcome(
            exit_status=command_result.returncode,
            output=command_result.output,
        )
        self.log.write(
            TAG_REFUSAL,
            "\n".join(
                [
                    f"goal: {turn.trimmed_goal}",
                    f"sentinel: {REFUSAL_SENTINEL}",
                    "output:",
                    self._describe_output(command_result),
                ]
            ),
        )

    def _confirm(self, command: str) -> ConfirmationDecision:
        if not self.session.confirm_mode:
            self.log.write(TAG_CONFIRM, "confirmation off; command approved automatically")
            return "not_required"
        if self.confirm_command_execution(command):
            self.log.write(TAG_CONFIRM, "operator approved command")
            return "approved"
        self.log.write(TAG_CONFIRM, "operator rejected command")
        return "rejected"

    def _report_error(self, message: str) -> None:
        self.log.write(TAG_ERROR, message)
        print(message, file=self.stderr)

    @staticmethod
    def _describe_output(command_result: CommandResult) -> str:
        if command_result.output is None:
            return STREAMED_OUTPUT_MARKER
        output = command_result.output.rstrip("\n")
        return output if output else EMPTY_OUTPUT_MARKER
