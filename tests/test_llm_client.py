import http.client
import io
import json
from pathlib import Path
from urllib.error import HTTPError, URLError

import pytest

from askshell.agent.models import ApiError, Command, Empty, Refusal, Session
from askshell.llm.client import (
    REDACTED_USER_CONTENT,
    REFUSAL_SENTINEL,
    SYSTEM_PROMPT,
    LLMClient,
    PayloadError,
)
from askshell.session_log import SessionLog


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self.body = body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def read(self):
        return self.body


def _client(tmp_path: Path, *, debug: bool = False, **kwargs) -> LLMClient:
    session = Session(debug_mode=debug)
    log = SessionLog(tmp_path / "session.log", session, stream=io.StringIO())
    return LLMClient(api_key="sk-test", model="gpt-4o-mini", log=log, **kwargs)


def _completion(content: object) -> bytes:
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]}).encode()


def test_build_payload_matches_chat_completions_shape() -> None:
    payload = LLMClient.build_payload(
        SYSTEM_PROMPT,
        "list files",
        model="gpt-4o-mini",
        temperature=0.2,
        max_tokens=150,
    )

    assert payload == {
        "model": "gpt-4o-mini",
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "list files"},
        ],
        "temperature": 0.2,
        "max_tokens": 150,
        "n": 1,
        "stop": None,
    }


def test_system_prompt_names_refusal_sentinel_and_forbids_fencing() -> None:
    assert REFUSAL_SENTINEL in SYSTEM_PROMPT
    assert "no code fences" in SYSTEM_PROMPT
    assert "mounted filesystems" in SYSTEM_PROMPT


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"choices": [{"message": {"content": "ls -la"}}]}, Command("ls -la")),
        ({"choices": [{"message": {"content": "  df -h\n"}}]}, Command("df -h")),
        ({"choices": [{"message": {"content": REFUSAL_SENTINEL}}]}, Refusal(REFUSAL_SENTINEL)),
        ({"choices": [{"message": {"content": f"\n{REFUSAL_SENTINEL}  "}}]}, Refusal(REFUSAL_SENTINEL)),
        ({"choices": [{"message": {"content": "   "}}]}, Empty()),
        ({"choices": [{"message": {"content": None}}]}, Empty()),
        ({"choices": []}, Empty()),
        ({}, Empty()),
        ({"error": {"message": "rate limited"}}, ApiError("rate limited")),
        ({"error": {"code": "oops"}}, ApiError("unknown error")),
    ],
)
def test_classify(raw: dict[str, object], expected: object) -> None:
    assert LLMClient.classify(raw) == expected


def test_classify_uses_only_first_choice() -> None:
    raw = {
        "choices": [
            {"message": {"content": "pwd"}},
            {"message": {"content": "rm -rf /"}},
        ]
    }

    assert LLMClient.classify(raw) == Command("pwd")


def test_paraphrased_refusal_is_a_normal_command() -> None:
    paraphrase = 'echo "Error: this task is too risky."'

    assert LLMClient.classify({"choices": [{"message": {"content": paraphrase}}]}) == Command(
        paraphrase
    )


def test_complete_sends_one_request(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(tmp_path)
    requests: list[object] = []

    def fake_urlopen(req, timeout=None):
        requests.append(req)
        return FakeResponse(_completion("ls -la"))

    monkeypatch.setattr("askshell.llm.client.request.urlopen", fake_urlopen)

    result = client.complete("list files")

    assert result == Command("ls -la")
    assert len(requests) == 1
    sent = requests[0]
    assert sent.get_header("Authorization") == "Bearer sk-test"
    body = json.loads(sent.data.decode("utf-8"))
    assert body["messages"][1] == {"role": "user", "content": "list files"}
    log = (tmp_path / "session.log").read_text(encoding="utf-8")
    assert "[API] POST https://api.openai.com/v1/chat/completions model=gpt-4o-mini" in log
    assert "raw response" not in log


def test_complete_debug_logs_redacted_payload_and_response_prefix(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    client = _client(tmp_path, debug=True)
    long_command = "echo " + "x" * 1000
    monkeypatch.setattr(
        "askshell.llm.client.request.urlopen",
        lambda *_a, **_k: FakeResponse(_completion(long_command)),
    )

    client.complete("my secret goal")

    log = (tmp_path / "session.log").read_text(encoding="utf-8")
    assert REDACTED_USER_CONTENT in log
    assert "my secret goal" not in log
    assert "raw response" in log
    assert "x" * 1000 not in log


def test_complete_maps_error_payload(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(tmp_path)
    monkeypatch.setattr(
        "askshell.llm.client.request.urlopen",
        lambda *_a, **_k: FakeResponse(b'{"error":{"message":"rate limited"}}'),
    )

    assert client.complete("list files") == ApiError("rate limited")


def test_complete_reads_error_message_from_http_error_body(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    client = _client(tmp_path)

    def fake_urlopen(*_args, **_kwargs):
        raise HTTPError(
            url="https://example.com",
            code=429,
            msg="Too Many Requests",
            hdrs=None,
            fp=io.BytesIO(b'{"error":{"message":"rate limited"}}'),
        )

    monkeypatch.setattr("askshell.llm.client.request.urlopen", fake_urlopen)

    assert client.complete("list files") == ApiError("rate limited")


def test_complete_http_error_without_body(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(tmp_path)

    def fake_urlopen(*_args, **_kwargs):
        raise HTTPError(
            url="https://example.com",
            code=503,
            msg="Service Unavailable",
            hdrs=None,
            fp=None,
        )

    monkeypatch.setattr("askshell.llm.client.request.urlopen", fake_urlopen)

    assert client.complete("list files") == ApiError("HTTP 503: Service Unavailable")


def test_complete_transport_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(tmp_path)

    def fake_urlopen(*_args, **_kwargs):
        raise URLError("connection refused")

    monkeypatch.setattr("askshell.llm.client.request.urlopen", fake_urlopen)

    result = client.complete("list files")

    assert isinstance(result, ApiError)
    assert "connection refused" in result.message


@pytest.mark.parametrize(
    "error",
    [
        http.client.BadStatusLine("garbage"),
        http.client.IncompleteRead(b"partial"),
        http.client.LineTooLong("header line"),
    ],
)
def test_complete_protocol_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, error: Exception
) -> None:
    client = _client(tmp_path)

    def fake_urlopen(*_args, **_kwargs):
        raise error

    monkeypatch.setattr("askshell.llm.client.request.urlopen", fake_urlopen)

    result = client.complete("list files")

    assert isinstance(result, ApiError)
    assert result.message.startswith("malformed response from backend")


def test_complete_malformed_api_url(tmp_path: Path) -> None:
    client = _client(tmp_path, api_url="api.openai.com/v1/chat/completions")

    result = client.complete("list files")

    assert isinstance(result, ApiError)
    assert "invalid request" in result.message
    assert "api.openai.com/v1/chat/completions" in result.message


def test_complete_timeout(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(tmp_path, timeout=5.0)

    def fake_urlopen(*_args, **_kwargs):
        raise TimeoutError

    monkeypatch.setattr("askshell.llm.client.request.urlopen", fake_urlopen)

    assert client.complete("list files") == ApiError("request timed out after 5.0s")


def test_complete_invalid_json(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(tmp_path)
    monkeypatch.setattr(
        "askshell.llm.client.request.urlopen",
        lambda *_a, **_k: FakeResponse(b"not-json"),
    )

    assert client.complete("list files") == ApiError("response was not a JSON object")


def test_unserializable_payload_raises_before_network(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    client = _client(tmp_path, temperature=float("nan"))
    calls: list[object] = []
    monkeypatch.setattr(
        "askshell.llm.client.request.urlopen",
        lambda *a, **_k: calls.append(a),
    )

    with pytest.raises(PayloadError):
        client.complete("list files")

    assert calls == []
