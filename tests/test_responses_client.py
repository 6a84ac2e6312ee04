from __future__ import annotations

import json

import pytest

from realities.generation import generate_reality
from realities.models.llm_client import (
    LLMClientError,
    LLMRequest,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
)
from realities.models.responses import ResponsesClient


def _make_response_payload(text: str) -> str:
    response = {
        "id": "resp_mock",
        "object": "response",
        "status": "completed",
        "output": [
            {
                "id": "msg_mock",
                "type": "message",
                "role": "assistant",
                "content": [
                    {
                        "type": "output_text",
                        "text": text,
                    }
                ],
            }
        ],
    }
    return json.dumps(response)


REALITY_TEXT = json.dumps(
    {
        "reality_name": "Product Manager",
        "timeline_phases": [
            {"phase": "Learn", "action": "Study product sense", "duration": "3 months"},
            {"phase": "Ship", "action": "Run a side project", "duration": "6 months"},
            {"phase": "Apply", "action": "Interview", "duration": "2 months"},
        ],
        "status": "STABLE",
    }
)


def test_responses_client_extracts_output_text() -> None:
    seen: list[dict] = []

    def transport(payload: dict) -> str:
        seen.append(payload)
        return _make_response_payload(REALITY_TEXT)

    client = ResponsesClient(model="gpt-5-mini", transport=transport)
    result = generate_reality(client, "Switch to product management")

    assert result.is_structured
    assert result.document.name == "Product Manager"
    assert seen[0]["model"] == "gpt-5-mini"
    assert seen[0]["input"][0]["role"] == "system"


def test_responses_client_joins_text_parts_and_skips_reasoning() -> None:
    def transport(_: dict) -> str:
        return json.dumps(
            {
                "status": "completed",
                "output": [
                    {"type": "reasoning", "summary": []},
                    {
                        "type": "message",
                        "content": [
                            {"type": "output_text", "text": REALITY_TEXT[:20]},
                            {"type": "output_text", "text": REALITY_TEXT[20:]},
                        ],
                    },
                ],
            }
        )

    client = ResponsesClient(transport=transport)
    text = client.complete(LLMRequest(prompt="plan"))
    assert json.loads(text)["reality_name"] == "Product Manager"


def test_responses_client_prefers_output_text_shortcut() -> None:
    client = ResponsesClient(transport=lambda _: json.dumps({"output_text": "hello", "output": []}))
    assert client.complete(LLMRequest(prompt="hi")) == "hello"


def test_responses_client_surfaces_refusals_and_upstream_errors() -> None:
    refusal = json.dumps(
        {"output": [{"type": "message", "content": [{"type": "refusal", "refusal": "no"}]}]}
    )
    client = ResponsesClient(transport=lambda _: refusal, max_attempts=1, retry_delay=0)
    with pytest.raises(LLMRetryError) as excinfo:
        client.complete(LLMRequest(prompt="hi"))
    assert isinstance(excinfo.value.__cause__, LLMResponseFormatError)

    failed = json.dumps({"error": {"message": "server overloaded"}, "output": []})
    client = ResponsesClient(transport=lambda _: failed, max_attempts=1, retry_delay=0)
    with pytest.raises(LLMRetryError) as excinfo:
        client.complete(LLMRequest(prompt="hi"))
    assert "server overloaded" in str(excinfo.value.__cause__)


def test_non_transport_failures_are_not_retried() -> None:
    calls = {"count": 0}

    def transport(_: dict) -> str:
        calls["count"] += 1
        raise LLMClientError("HTTP 401")

    client = ResponsesClient(transport=transport, max_attempts=3, retry_delay=0)
    with pytest.raises(LLMClientError):
        client.complete(LLMRequest(prompt="hi"))
    assert calls["count"] == 1


def test_responses_client_retries_transport_errors() -> None:
    calls = {"count": 0}

    def transport(_: dict) -> str:
        calls["count"] += 1
        if calls["count"] == 1:
            raise LLMTransportError("connection reset")
        return _make_response_payload("ok")

    client = ResponsesClient(transport=transport, retry_delay=0)
    assert client.complete(LLMRequest(prompt="hi")) == "ok"
    assert calls["count"] == 2


def test_responses_client_gives_up_after_max_attempts() -> None:
    def transport(_: dict) -> str:
        raise ConnectionError("connection refused")

    client = ResponsesClient(transport=transport, max_attempts=2, retry_delay=0)
    with pytest.raises(LLMRetryError):
        client.complete(LLMRequest(prompt="hi"))


def test_responses_client_requires_api_key_without_transport(monkeypatch) -> None:
    monkeypatch.delenv("REALITIES_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError):
        ResponsesClient()


def test_timeout_override_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("REALITIES_TIMEOUT", "7.5")
    client = ResponsesClient(api_key="test-key")
    assert client._timeout == 7.5

    monkeypatch.setenv("REALITIES_TIMEOUT", "soon")
    assert ResponsesClient(api_key="test-key", timeout=30)._timeout == 30
