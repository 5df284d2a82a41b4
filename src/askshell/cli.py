"""Command-line interface for askshell."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn, cast

from .agent.models import Session
from .agent.pipeline import TurnPipeline
from .agent.terminal import confirm_from_terminal
from .config import AppConfig
from .llm.client import LLMClient
from .repl import InteractiveShell, create_line_reader
from .session_log import SessionLog, create_log_path
from .shell import create_shell_adapter, shell_available

LOGGER = logging.getLogger(__name__)


class CLIArgs(argparse.Namespace):
    debug: str | None
    confirm: str | None


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit status 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="askshell",
        description="Natural-language shell assistant with a confirmation gate",
        allow_abbrev=False,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        dest="debug",
        action="store_const",
        const="on",
        help="Same as --debug=on.",
    )
    parser.add_argument(
        "--debug",
        dest="debug",
        choices=("on", "off"),
        help="Stream command output live and mirror log records to stderr.",
    )
    parser.add_argument(
        "--confirm",
        dest="confirm",
        choices=("on", "off"),
        help="Ask for approval before running each generated command.",
    )
    return parser


def _flag_value(flag: str | None, default: bool) -> bool:
    if flag is None:
        return default
    return flag == "on"


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = cast(CLIArgs, parser.parse_args(argv))
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1
    config = AppConfig.from_env()
    debug = _flag_value(args.debug, config.debug)
    confirm = _flag_value(args.confirm, config.confirm)
    _configure_logging(debug)

    if not config.api_key:
        print("Error: OPENAI_API_KEY is not set.", file=sys.stderr)
        return 1
    if not shell_available(config.shell):
        print(f"Error: required shell '{config.shell}' was not found in PATH.", file=sys.stderr)
        return 1

    log_path = create_log_path(config.log_dir)
    session = Session(debug_mode=debug, confirm_mode=confirm, log_path=log_path)
    log = SessionLog(log_path, session)
    client = LLMClient(
        api_key=config.api_key,
        model=config.model,
        log=log,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        api_url=config.api_url,
        timeout=config.timeout,
    )
    adapter = create_shell_adapter(config.shell, log=log)
    pipeline = TurnPipeline(
        session=session,
        client=client,
        shell=adapter,
        log=log,
        confirm_command_execution=confirm_from_terminal,
    )
    LOGGER.debug(
        "session_configured",
        extra={"shell": adapter.name, "model": config.model, "log_path": str(log_path)},
    )
    shell = InteractiveShell(
        pipeline=pipeline,
        reader=create_line_reader(config.history_file),
        log=log,
    )
    return shell.run()


if __name__ == "__main__":
    raise SystemExit(main())
