"""Translate a :class:`GenerationRequest` into adapter-level requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from reverie.types import EffortLevel, GenerationRequest, LLMRequest


@dataclass(frozen=True)
class EffortProfile:
    """Sampling parameters implied by an effort level."""

    temperature: float
    max_tokens: int
    reasoning_effort: str


EFFORT_PROFILES: dict[EffortLevel, EffortProfile] = {
    EffortLevel.LOW: EffortProfile(temperature=0.3, max_tokens=4096, reasoning_effort="low"),
    EffortLevel.MEDIUM: EffortProfile(temperature=0.7, max_tokens=4096, reasoning_effort="medium"),
    EffortLevel.HIGH: EffortProfile(temperature=0.9, max_tokens=8192, reasoning_effort="high"),
}


def initial_messages(request: GenerationRequest) -> list[dict[str, Any]]:
    """Conversation that opens every invocation."""
    messages: list[dict[str, Any]] = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    messages.append({"role": "user", "content": request.prompt})
    return messages


def build_llm_request(
    request: GenerationRequest,
    model: str,
    messages: list[dict[str, Any]] | None = None,
    tools: list[dict[str, Any]] | None = None,
) -> LLMRequest:
    """Build the adapter request for *model* from *request*."""
    profile = EFFORT_PROFILES[request.effort]
    return LLMRequest(
        messages=list(messages) if messages is not None else initial_messages(request),
        model=model,
        max_tokens=profile.max_tokens,
        temperature=profile.temperature,
        reasoning_effort=profile.reasoning_effort,
        tools=tools or None,
        tool_choice="auto" if tools else None,
        metadata=request.paradigm_metadata,
    )
