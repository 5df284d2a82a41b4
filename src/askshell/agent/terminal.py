"""Yes/no confirmation read from the controlling terminal."""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import TextIO

CONTROLLING_TERMINAL = "/dev/tty"
APPROVAL_ANSWERS = {"y", "yes"}

ConfirmCommandExecution = Callable[[str], bool]


def is_approval(answer: str) -> bool:
    return answer.strip().lower() in APPROVAL_ANSWERS


def ask_confirmation(command: str, tty_in: TextIO, tty_out: TextIO) -> bool:
    tty_out.write("\n=== PROPOSED COMMAND ===\n")
    tty_out.write(f"{command}\n")
    tty_out.write("========================\n")
    tty_out.write("Execute this command? [y/N]: ")
    tty_out.flush()
    return is_approval(tty_in.readline())


def confirm_from_terminal(command: str, *, tty_path: str = CONTROLLING_TERMINAL) -> bool:
    """Show ``command`` and ask the operator to approve it.

    The answer is read from the controlling terminal, so goals fed through
    redirected stdin can never answer the prompt themselves. Without a
    controlling terminal the command is treated as rejected.
    """
    try:
        with open(tty_path, encoding="utf-8", errors="replace") as tty_in, open(
            tty_path, "w", encoding="utf-8"
        ) as tty_out:
            return ask_confirmation(command, tty_in, tty_out)
    except UnicodeError as exc:
        print(f"Unreadable answer from terminal ({exc}); command rejected.", file=sys.stderr)
        return False
    except OSError as exc:
        print(f"No controlling terminal available ({exc}); command rejected.", file=sys.stderr)
        return False
