"""Data models shared by the turn pipeline, model client and shell adapter."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Union

ConfirmationDecision = Literal["not_required", "approved", "rejected"]
TurnStatus = Literal[
    "executed",
    "rejected",
    "refused",
    "api_error",
    "empty",
    "internal_error",
    "interrupted",
]


@dataclass(slots=True)
class Session:
    """Mode flags and log location for the lifetime of one interactive session."""

    debug_mode: bool = False
    confirm_mode: bool = True
    log_path: Path | None = None


@dataclass(frozen=True, slots=True)
class Command:
    """A candidate command line extracted from the model completion."""

    text: str


@dataclass(frozen=True, slots=True)
class Refusal:
    """The model answered with the fixed refusal sentinel."""

    text: str


@dataclass(frozen=True, slots=True)
class ApiError:
    """The backend returned an error payload or could not be reached."""

    message: str


@dataclass(frozen=True, slots=True)
class Empty:
    """The backend answered but no usable completion text was found."""


ModelResult = Union[Command, Refusal, ApiError, Empty]


@dataclass(slots=True)
class ExecutionOutcome:
    """Exit status and captured output of one interpreter invocation.

    ``output`` is ``None`` when the output was streamed to the operator
    instead of being buffered.
    """

    exit_status: int
    output: str | None


@dataclass(slots=True)
class Turn:
    """Captured state for a single user goal."""

    raw_goal: str
    trimmed_goal: str
    status: TurnStatus | None = None
    model_result: ModelResult | None = None
    confirmation: ConfirmationDecision | None = None
    outcome: ExecutionOutcome | None = None
