"""Responses API client used to generate realities as plain text."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, List, Optional

from .llm_client import LLMClient, LLMClientError, LLMResponseFormatError, LLMTransportError

__all__ = ["ResponsesClient", "RETRYABLE_STATUS"]

LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1/responses"
RETRYABLE_STATUS = frozenset({408, 409, 429, 500, 502, 503, 504})

Transport = Callable[[Dict[str, Any]], str]


def _env_timeout(default: float) -> float:
    raw = os.getenv("REALITIES_TIMEOUT")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid REALITIES_TIMEOUT value %r", raw)
        return default
    return value if value > 0 else default


class ResponsesClient(LLMClient):
    """Send one planner request and return the assistant's text.

    The transport receives the request body and returns the raw response
    body; tests inject one, production uses :meth:`_post`.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_ENDPOINT,
        model: str = "gpt-5-mini",
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = api_key or os.getenv("REALITIES_API_KEY") or os.getenv("OPENAI_API_KEY")
        if transport is None and not self._api_key:
            raise ValueError("An API key is required to call the Responses API.")
        self._base_url = base_url
        self._timeout = _env_timeout(timeout)
        self._transport: Transport = transport or self._post

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        try:
            body = self._transport(payload)
        except LLMClientError:
            raise
        except (OSError, ValueError) as error:
            raise LLMTransportError(f"Generation request failed: {error}") from error
        return self._output_text(body)

    def _post(self, payload: Dict[str, Any]) -> str:
        request = urllib.request.Request(
            self._base_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )
        LOGGER.debug("POST %s model=%s", self._base_url, payload.get("model"))
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return response.read().decode("utf-8")
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            detail = error.read().decode("utf-8", errors="ignore")
            if error.code in RETRYABLE_STATUS:
                raise LLMTransportError(f"HTTP {error.code}: {detail}") from error
            # Bad key, bad model or bad request: retrying cannot help.
            raise LLMClientError(f"Generation rejected with HTTP {error.code}: {detail}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Cannot reach {self._base_url}: {error.reason}") from error
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"No reply within {self._timeout:g}s") from error

    @staticmethod
    def _output_text(body: str) -> str:
        """Return the assistant text from a Responses envelope.

        Bodies that are not JSON envelopes are returned unchanged so that
        stub transports can answer with the text itself.
        """
        try:
            envelope = json.loads(body)
        except json.JSONDecodeError:
            return body
        if not isinstance(envelope, dict) or not (
            "output" in envelope or "output_text" in envelope or "error" in envelope
        ):
            return body

        error = envelope.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise LLMTransportError(f"Generation failed upstream: {message}")

        if isinstance(envelope.get("output_text"), str):
            return envelope["output_text"]

        texts: List[str] = []
        for item in envelope.get("output") or []:
            if not isinstance(item, dict) or item.get("type", "message") != "message":
                continue
            for part in item.get("content") or []:
                if not isinstance(part, dict):
                    continue
                if part.get("type") == "refusal":
                    raise LLMResponseFormatError(f"Model refused: {part.get('refusal', '')}")
                if part.get("type") == "output_text" and isinstance(part.get("text"), str):
                    texts.append(part["text"])
        if envelope.get("status") == "incomplete":
            LOGGER.warning("Generation response was truncated: %s", envelope.get("incomplete_details"))
        return "".join(texts)
