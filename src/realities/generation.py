"""Ask the model for a reality and tolerate whatever comes back."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .memory.schema import PlanDocument, Profile
from .models.llm_client import LLMClient, LLMRequest, extract_json_object
from .prompts import PLANNER_SYSTEM_PROMPT, profile_context, render_planner_prompt

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationResult:
    """Either a validated document or the raw model text it could not become."""

    raw_text: str
    document: Optional[PlanDocument] = None
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return self.document is not None


def parse_generation_output(raw_text: str) -> GenerationResult:
    """Turn model output into a document, degrading to opaque text on failure."""
    payload = extract_json_object(raw_text)
    if payload is None:
        LOGGER.warning("Generation output contained no JSON object; keeping raw text")
        return GenerationResult(raw_text=raw_text, error="no JSON object found")
    try:
        document = PlanDocument.model_validate(payload)
    except ValidationError as error:
        LOGGER.warning("Generation output did not match the reality schema: %s", error)
        return GenerationResult(
            raw_text=raw_text,
            payload=payload,
            error=f"schema mismatch: {error.error_count()} error(s)",
        )
    return GenerationResult(raw_text=raw_text, document=document, payload=payload)


def generate_reality(
    client: LLMClient,
    prompt: str,
    profile: Optional[Profile] = None,
    *,
    temperature: float = 0.7,
) -> GenerationResult:
    """Generate one reality for ``prompt``. Client failures propagate as ``LLMClientError``."""
    request = LLMRequest(
        prompt=render_planner_prompt(prompt, profile_context(profile)),
        system_prompt=PLANNER_SYSTEM_PROMPT,
        metadata={"phase": "generate", "request": {"prompt": prompt}},
        temperature=temperature,
    )
    raw_text = client.complete(request)
    return parse_generation_output(raw_text)


__all__ = ["GenerationResult", "generate_reality", "parse_generation_output"]
