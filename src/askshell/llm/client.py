"""Thin model client that turns a goal into a single command line."""

from __future__ import annotations

import http.client
import json
import logging
from urllib import request
from urllib.error import HTTPError, URLError

from askshell.agent.models import ApiError, Command, Empty, ModelResult, Refusal
from askshell.session_log import TAG_API, SessionLog

REFUSAL_SENTINEL = (
    'echo "Error: Task is too risky or requires manual intervention'
    ' (e.g., reboot, live environment)."'
)

SYSTEM_PROMPT_PARTS = [
    "You translate the user's goal into exactly one shell command line for a POSIX shell.",
    (
        "Output only the raw command text: no markdown, no code fences, no"
        " backticks, no explanations and no surrounding prose."
    ),
    (
        "Never produce destructive commands, and never touch the integrity of"
        " mounted filesystems (no formatting, repartitioning, wiping or"
        " recursive deletion of system paths)."
    ),
    (
        "If the goal is unsafe, impossible to do safely under these rules, or"
        " needs manual intervention such as a reboot or a live environment,"
        f" output exactly this and nothing else: {REFUSAL_SENTINEL}"
    ),
]
SYSTEM_PROMPT = " ".join(SYSTEM_PROMPT_PARTS)

REDACTED_USER_CONTENT = "<user goal redacted>"
RESPONSE_LOG_PREFIX_CHARS = 300
LOGGER = logging.getLogger(__name__)


class PayloadError(Exception):
    """Raised when a request body cannot be built; no request is sent."""


class LLMClient:
    """Small HTTP client for chat-completions style command generation."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        log: SessionLog,
        temperature: float = 0.2,
        max_tokens: int = 150,
        system_prompt: str = SYSTEM_PROMPT,
        api_url: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.log = log
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.api_url = api_url
        self.timeout = timeout

    def complete(self, goal: str) -> ModelResult:
        """Send one request for ``goal`` and classify the answer.

        Raises ``PayloadError`` before any network traffic if the request
        body cannot be serialized. Every other failure is returned as an
        ``ApiError``.
        """
        payload = self.build_payload(
            self.system_prompt,
            goal,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        body = self._encode(payload)
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self.log.write(TAG_API, f"POST {self.api_url} model={self.model}")
        self.log.debug(TAG_API, f"request payload: {json.dumps(self._redact(payload))}")
        LOGGER.debug(
            "llm_request_prepared",
            extra={"api_url": self.api_url, "model": self.model, "payload_bytes": len(body)},
        )

        try:
            req = request.Request(self.api_url, data=body, headers=headers, method="POST")
            with request.urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                raw_text = resp.read().decode("utf-8")
        except HTTPError as exc:
            body_text = self._read_error_body(exc)
            LOGGER.debug(
                "llm_request_http_error",
                extra={"api_url": self.api_url, "http_status": exc.code, "reason": exc.reason},
            )
            if body_text:
                self.log.debug(TAG_API, f"error response: {body_text[:RESPONSE_LOG_PREFIX_CHARS]}")
                message = self._error_message(self._parse_object(body_text))
                if message:
                    return ApiError(message)
            return ApiError(f"HTTP {exc.code}: {exc.reason}")
        except URLError as exc:
            LOGGER.debug("llm_request_transport_error", extra={"reason": str(exc.reason)})
            return ApiError(f"request failed: {exc.reason}")
        except TimeoutError:
            return ApiError(f"request timed out after {self.timeout:.1f}s")
        except OSError as exc:
            return ApiError(f"request failed: {exc}")
        except UnicodeDecodeError as exc:
            return ApiError(f"could not decode response: {exc}")
        except http.client.HTTPException as exc:
            LOGGER.debug("llm_response_protocol_error", extra={"error": repr(exc)})
            return ApiError(f"malformed response from backend: {exc!r}")
        except ValueError as exc:
            return ApiError(f"invalid request for {self.api_url!r}: {exc}")

        self.log.debug(TAG_API, f"raw response: {raw_text[:RESPONSE_LOG_PREFIX_CHARS]}")
        raw = self._parse_object(raw_text)
        if raw is None:
            return ApiError("response was not a JSON object")
        return self.classify(raw)

    @staticmethod
    def build_payload(
        system_prompt: str,
        goal: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> dict[str, object]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": goal},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "n": 1,
            "stop": None,
        }

    @classmethod
    def classify(cls, raw: dict[str, object]) -> ModelResult:
        """Map a decoded backend response onto exactly one result variant."""
        message = cls._error_message(raw)
        if message is not None:
            return ApiError(message)

        text = cls._extract_content(raw)
        if text is None:
            return Empty()
        text = text.strip()
        if not text:
            return Empty()
        if text == REFUSAL_SENTINEL:
            return Refusal(text)
        return Command(text)

    @staticmethod
    def _encode(payload: dict[str, object]) -> bytes:
        try:
            return json.dumps(payload, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise PayloadError(f"could not serialize request payload: {exc}") from exc

    @staticmethod
    def _redact(payload: dict[str, object]) -> dict[str, object]:
        redacted = dict(payload)
        messages = payload.get("messages")
        if isinstance(messages, list):
            redacted["messages"] = [
                {**message, "content": REDACTED_USER_CONTENT}
                if isinstance(message, dict) and message.get("role") == "user"
                else message
                for message in messages
            ]
        return redacted

    @staticmethod
    def _parse_object(text: str) -> dict[str, object] | None:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return None
        if not isinstance(parsed, dict):
            return None
        return {str(key): value for key, value in parsed.items()}

    @staticmethod
    def _error_message(raw: dict[str, object] | None) -> str | None:
        if raw is None or "error" not in raw:
            return None
        error = raw.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message.strip():
                return message.strip()
            return "unknown error"
        if isinstance(error, str) and error.strip():
            return error.strip()
        if error is None:
            return None
        return "unknown error"

    @staticmethod
    def _extract_content(raw: dict[str, object]) -> str | None:
        choices = raw.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        if not isinstance(first, dict):
            return None
        message = first.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        return content if isinstance(content, str) else None

    @staticmethod
    def _read_error_body(exc: HTTPError) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None
        if not raw:
            return None
        return raw.decode("utf-8", errors="replace").strip()
