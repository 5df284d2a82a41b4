"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 150
DEFAULT_TIMEOUT = 60.0
STATE_DIR = Path("~/.askshell")


def _to_bool(value: object, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables and config files."""

    api_key: str | None
    model: str
    api_url: str
    temperature: float
    max_tokens: int
    timeout: float
    log_dir: str
    history_file: str
    shell: str
    debug: bool
    confirm: bool

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        openai_from_file = file_config.get("openai")
        openai_config = openai_from_file if isinstance(openai_from_file, dict) else {}

        return cls(
            api_key=(
                _to_optional_string(os.getenv("OPENAI_API_KEY"))
                or _to_optional_string(os.getenv("ASKSHELL_API_KEY"))
                or _to_optional_string(openai_config.get("api_key"))
                or _to_optional_string(file_config.get("api_key"))
            ),
            model=(
                _to_optional_string(os.getenv("ASKSHELL_MODEL"))
                or _to_optional_string(file_config.get("model"))
                or DEFAULT_MODEL
            ),
            api_url=(
                _to_optional_string(os.getenv("ASKSHELL_API_URL"))
                or _to_optional_string(openai_config.get("api_url"))
                or DEFAULT_API_URL
            ),
            temperature=_to_temperature(
                os.getenv("ASKSHELL_TEMPERATURE") or file_config.get("temperature"),
                default=DEFAULT_TEMPERATURE,
            ),
            max_tokens=_to_positive_int(
                os.getenv("ASKSHELL_MAX_TOKENS") or file_config.get("max_tokens"),
                default=DEFAULT_MAX_TOKENS,
            ),
            timeout=_to_positive_float(
                os.getenv("ASKSHELL_TIMEOUT") or file_config.get("timeout"),
                default=DEFAULT_TIMEOUT,
            ),
            log_dir=(
                _to_optional_string(os.getenv("ASKSHELL_LOG_DIR"))
                or _to_optional_string(file_config.get("log_dir"))
                or str(STATE_DIR / "logs")
            ),
            history_file=(
                _to_optional_string(os.getenv("ASKSHELL_HISTORY_FILE"))
                or _to_optional_string(file_config.get("history_file"))
                or str(STATE_DIR / "history")
            ),
            shell=_resolve_shell(
                _to_optional_string(os.getenv("ASKSHELL_SHELL"))
                or _to_optional_string(file_config.get("shell"))
            ),
            debug=_to_bool(
                os.getenv("ASKSHELL_DEBUG"),
                default=_to_bool(file_config.get("debug"), default=False),
            ),
            confirm=_to_bool(
                os.getenv("ASKSHELL_CONFIRM"),
                default=_to_bool(file_config.get("confirm"), default=True),
            ),
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value).expanduser()
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("ASKSHELL_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("askshell.config.json")
    local_override = _load_file_config("askshell.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _resolve_shell(value: str | None) -> str:
    if value is None:
        return "bash"
    normalized = value.strip().lower()
    return "sh" if normalized == "sh" else "bash"


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _to_positive_float(value: object, *, default: float) -> float:
    parsed = _to_float(value)
    if parsed is None or parsed <= 0:
        return default
    return parsed


def _to_temperature(value: object, *, default: float) -> float:
    parsed = _to_float(value)
    if parsed is None:
        return default
    return min(max(parsed, 0.0), 2.0)
