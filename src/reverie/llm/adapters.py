"""Provider adapters: one async HTTP client per backend family.

Each adapter turns a provider-neutral :class:`LLMRequest` into its wire
format, performs exactly one request (no retries; retry and fallback policy
belongs to the orchestrator) and converts the reply back into an
:class:`LLMResponse` or a stream of :class:`StreamChunk`.

HTTP failures are raised as :class:`ProviderError`; transport errors and
timeouts from ``httpx`` propagate unchanged for the classifier.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx

from reverie.config import ProviderSpec
from reverie.llm.errors import ProviderError, parse_retry_after
from reverie.llm.rate_limit import RateLimiter, estimate_tokens
from reverie.types import Citation, LLMRequest, LLMResponse, StreamChunk, ToolCall

_logger = logging.getLogger(__name__)

# Model families that take ``reasoning_effort`` instead of ``temperature``
_REASONING_MODEL_PREFIXES = ("o1", "o3", "o4", "gpt-5")


def _is_reasoning_model(model: str) -> bool:
    return model.lower().startswith(_REASONING_MODEL_PREFIXES)


def _extract_thinking(text: str) -> tuple[str, str]:
    """Extract ``<think>...</think>`` blocks from response text.

    Returns (thinking_text, cleaned_text).
    """
    pattern = r"<think>(.*?)</think>"
    thinking_parts = re.findall(pattern, text, re.DOTALL)
    thinking = "\n".join(thinking_parts).strip()
    cleaned = re.sub(pattern, "", text, flags=re.DOTALL).strip()
    return thinking, cleaned


def _load_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        _logger.warning("Discarding malformed tool arguments: %.200s", raw)
        return {}
    return args if isinstance(args, dict) else {"value": args}


def _sse_data(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


# ---------------------------------------------------------------------------
# Base adapter
# ---------------------------------------------------------------------------

class ProviderAdapter(ABC):
    """Uniform interface over one LLM backend.

    Parameters
    ----------
    spec:
        Provider configuration (endpoint, credentials, models).
    timeout:
        HTTP timeout in seconds.  The orchestrator applies its own
        per-attempt timeout on top of this.
    transport:
        Optional ``httpx`` transport, e.g. ``httpx.MockTransport`` in tests.
    """

    default_url: str = ""
    native_tools: bool = True

    def __init__(
        self,
        spec: ProviderSpec,
        timeout: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = spec.url or self.default_url
        if not base_url:
            raise ValueError(f"Provider {spec.name!r} has no url configured")
        self.spec = spec
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=self._headers(),
            timeout=httpx.Timeout(timeout, connect=30),
            transport=transport,
        )
        self.rate_limiter: RateLimiter | None = None
        if spec.requests_per_minute or spec.tokens_per_minute:
            self.rate_limiter = RateLimiter(
                requests_per_minute=spec.requests_per_minute,
                tokens_per_minute=spec.tokens_per_minute,
                burst_tokens=spec.burst_tokens,
            )
        self._slots = (
            asyncio.Semaphore(spec.max_concurrency) if spec.max_concurrency > 0 else None
        )

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def enabled(self) -> bool:
        return self.spec.enabled

    @property
    def supports_tools(self) -> bool:
        return self.native_tools and self.spec.supports_tools

    @property
    def max_retries(self) -> int | None:
        """Per-provider retry budget override (None = orchestrator default)."""
        return self.spec.max_retries

    def model_for(self, requested: str | None) -> str:
        return self.spec.model_for(requested)

    @abstractmethod
    async def generate_once(self, request: LLMRequest) -> LLMResponse:
        """Send one non-streaming request."""

    @abstractmethod
    def generate_streaming(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        """Send one streaming request and yield chunks in emission order."""

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _params(self) -> dict[str, str] | None:
        return None

    def _slot(self) -> contextlib.AbstractAsyncContextManager[Any]:
        return self._slots if self._slots is not None else contextlib.nullcontext()

    async def _throttle(self, payload: dict[str, Any], output_tokens: int) -> None:
        """Wait for client-side rate-limit capacity before a request."""
        if self.rate_limiter is None:
            return
        estimated = estimate_tokens(json.dumps(payload, default=str)) + output_tokens
        await self.rate_limiter.acquire(estimated)

    def _observe(self, resp: httpx.Response) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.update_from_headers(resp.headers)

    def _record_usage(self, usage: dict[str, Any]) -> None:
        total = usage.get("total_tokens") if usage else None
        if self.rate_limiter is not None and isinstance(total, int):
            self.rate_limiter.record_usage(total)

    async def _post_json(
        self, path: str, payload: dict[str, Any], output_tokens: int = 0,
    ) -> dict[str, Any]:
        await self._throttle(payload, output_tokens)
        async with self._slot():
            resp = await self._client.post(path, json=payload, params=self._params())
        self._observe(resp)
        if resp.status_code >= 400:
            raise self._error_from_response(resp, resp.text)
        try:
            data = resp.json()
        except ValueError:
            raise ProviderError(
                "invalid JSON response", provider=self.name,
                status_code=resp.status_code, body=resp.text[:500],
            ) from None
        if not isinstance(data, dict):
            raise ProviderError(
                "unexpected response payload", provider=self.name, body=data,
            )
        return data

    async def _stream_lines(
        self, path: str, payload: dict[str, Any], output_tokens: int = 0,
    ) -> AsyncIterator[str]:
        await self._throttle(payload, output_tokens)
        async with self._slot(), self._client.stream(
            "POST", path, json=payload, params=self._params(),
        ) as resp:
            self._observe(resp)
            if resp.status_code >= 400:
                body = (await resp.aread()).decode(errors="replace")
                raise self._error_from_response(resp, body)
            async for line in resp.aiter_lines():
                if line.strip():
                    yield line

    def _error_from_response(self, resp: httpx.Response, text: str) -> ProviderError:
        message = text.strip()[:500] or resp.reason_phrase
        code = ""
        body: Any = None
        try:
            body = json.loads(text) if text else None
        except json.JSONDecodeError:
            body = None
        if isinstance(body, list) and body:
            body = body[0]
        if isinstance(body, dict):
            err = body.get("error", body)
            if isinstance(err, dict):
                message = err.get("message") or message
                code = " ".join(
                    str(err[k]) for k in ("code", "type", "status") if err.get(k)
                )
            elif isinstance(err, str):
                message = err
        _logger.debug(
            "%s returned HTTP %d: %s", self.name, resp.status_code, message,
        )
        retry_after = parse_retry_after(resp.headers.get("retry-after"))
        if resp.status_code == 429 and retry_after and self.rate_limiter is not None:
            self.rate_limiter.penalize(retry_after)
        return ProviderError(
            message,
            provider=self.name,
            status_code=resp.status_code,
            code=code,
            retry_after=retry_after,
            body=body,
        )


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions (OpenAI, xAI Grok, LM Studio, Ollama)
# ---------------------------------------------------------------------------

class OpenAIChatAdapter(ProviderAdapter):
    """Adapter for ``/chat/completions`` style APIs."""

    default_url = "https://api.openai.com/v1"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.spec.api_key:
            headers["Authorization"] = f"Bearer {self.spec.api_key}"
        return headers

    def _payload(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
        }
        if _is_reasoning_model(request.model):
            payload["max_completion_tokens"] = request.max_tokens
            payload["reasoning_effort"] = request.reasoning_effort
        else:
            payload["max_tokens"] = request.max_tokens
            payload["temperature"] = request.temperature
        if request.tools:
            payload["tools"] = request.tools
            if request.tool_choice:
                payload["tool_choice"] = request.tool_choice
        if stream:
            payload["stream"] = True
        if self.spec.extra_params:
            payload.update(self.spec.extra_params)
        return payload

    async def generate_once(self, request: LLMRequest) -> LLMResponse:
        start = time.monotonic()
        data = await self._post_json(
            "/chat/completions", self._payload(request, stream=False), request.max_tokens,
        )
        latency = (time.monotonic() - start) * 1000

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("empty choices", provider=self.name, body=data)
        choice = choices[0]
        message = choice.get("message") or {}

        thinking, content = _extract_thinking(message.get("content") or "")
        reasoning = message.get("reasoning_content") or message.get("reasoning") or ""
        if isinstance(reasoning, str) and reasoning:
            thinking = "\n".join(p for p in (reasoning.strip(), thinking) if p)

        tool_calls: list[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            func = tc.get("function", {})
            tool_calls.append(
                ToolCall(
                    name=func.get("name", ""),
                    arguments=_load_arguments(func.get("arguments")),
                    id=tc.get("id", ""),
                    raw=json.dumps(tc),
                )
            )

        usage = data.get("usage") or {}
        self._record_usage(usage)
        return LLMResponse(
            content=content,
            thinking=thinking,
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "",
            usage=usage,
            model=data.get("model", request.model),
            sources=self._citations(data, message),
            raw_response=data,
            latency_ms=latency,
        )

    async def generate_streaming(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        payload = self._payload(request, stream=True)
        citations: list[Citation] = []
        usage: dict[str, int] = {}
        # Tool call fragments keyed by their stream index
        pending: dict[int, dict[str, str]] = {}
        async for line in self._stream_lines("/chat/completions", payload, request.max_tokens):
            data_str = _sse_data(line)
            if data_str is None:
                continue
            if data_str == "[DONE]":
                break
            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                continue
            if data.get("error"):
                err = data["error"]
                raise ProviderError(
                    err.get("message", str(err)) if isinstance(err, dict) else str(err),
                    provider=self.name,
                    code=str(err.get("code", "")) if isinstance(err, dict) else "",
                )
            if data.get("citations") and not citations:
                citations = self._citations(data, {})
            if data.get("usage"):
                usage = data["usage"]
            for choice in data.get("choices") or []:
                delta = choice.get("delta") or {}
                for tc in delta.get("tool_calls") or []:
                    entry = pending.setdefault(
                        tc.get("index", len(pending)), {"id": "", "name": "", "arguments": ""},
                    )
                    func = tc.get("function") or {}
                    if tc.get("id"):
                        entry["id"] = tc["id"]
                    if func.get("name"):
                        entry["name"] = func["name"]
                    entry["arguments"] += func.get("arguments") or ""
                if delta.get("content"):
                    yield StreamChunk(text=delta["content"])
        if pending:
            yield StreamChunk(
                text="",
                tool_calls=[
                    ToolCall(
                        name=entry["name"],
                        arguments=_load_arguments(entry["arguments"]),
                        id=entry["id"],
                        raw=json.dumps(entry),
                    )
                    for _, entry in sorted(pending.items())
                ],
            )
        self._record_usage(usage)
        if citations or usage:
            yield StreamChunk(text="", metadata={"sources": citations, "usage": usage})

    @staticmethod
    def _citations(data: dict[str, Any], message: dict[str, Any]) -> list[Citation]:
        sources: list[Citation] = []
        # xAI live search: top-level list of URLs
        for item in data.get("citations") or []:
            if isinstance(item, str):
                sources.append(Citation(url=item))
            elif isinstance(item, dict) and item.get("url"):
                sources.append(Citation(url=item["url"], title=item.get("title", "")))
        # OpenAI web search annotations
        for ann in message.get("annotations") or []:
            cite = ann.get("url_citation") if isinstance(ann, dict) else None
            if cite and cite.get("url"):
                sources.append(Citation(url=cite["url"], title=cite.get("title", "")))
        return sources


# ---------------------------------------------------------------------------
# Azure OpenAI Responses API
# ---------------------------------------------------------------------------

class AzureResponsesAdapter(ProviderAdapter):
    """Adapter for the Azure OpenAI ``/openai/v1/responses`` endpoint."""

    default_url = ""  # resource endpoint is always configured

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.spec.api_key:
            headers["api-key"] = self.spec.api_key
        return headers

    def _params(self) -> dict[str, str] | None:
        return {"api-version": self.spec.api_version or "preview"}

    @staticmethod
    def _input_items(
        messages: list[dict[str, Any]],
    ) -> tuple[str, list[dict[str, Any]]]:
        instructions: list[str] = []
        items: list[dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role")
            if role == "system":
                instructions.append(msg.get("content") or "")
            elif role == "tool":
                items.append({
                    "type": "function_call_output",
                    "call_id": msg.get("tool_call_id", ""),
                    "output": msg.get("content") or "",
                })
            else:
                if msg.get("content"):
                    items.append({"role": role, "content": msg["content"]})
                for tc in msg.get("tool_calls") or []:
                    func = tc.get("function", {})
                    items.append({
                        "type": "function_call",
                        "call_id": tc.get("id", ""),
                        "name": func.get("name", ""),
                        "arguments": func.get("arguments", "{}"),
                    })
        return "\n\n".join(instructions), items

    def _payload(self, request: LLMRequest, stream: bool) -> dict[str, Any]:
        instructions, items = self._input_items(request.messages)
        payload: dict[str, Any] = {
            "model": request.model,
            "input": items,
            "max_output_tokens": request.max_tokens,
        }
        if instructions:
            payload["instructions"] = instructions
        if _is_reasoning_model(request.model):
            payload["reasoning"] = {"effort": request.reasoning_effort, "summary": "auto"}
        else:
            payload["temperature"] = request.temperature
        if request.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "name": t["function"]["name"],
                    "description": t["function"].get("description", ""),
                    "parameters": t["function"].get("parameters", {}),
                }
                for t in request.tools
            ]
            if request.tool_choice:
                payload["tool_choice"] = request.tool_choice
        if stream:
            payload["stream"] = True
        if self.spec.extra_params:
            payload.update(self.spec.extra_params)
        return payload

    async def generate_once(self, request: LLMRequest) -> LLMResponse:
        start = time.monotonic()
        data = await self._post_json(
            "/openai/v1/responses", self._payload(request, stream=False), request.max_tokens,
        )
        latency = (time.monotonic() - start) * 1000
        if data.get("status") == "failed":
            err = data.get("error") or {}
            raise ProviderError(
                err.get("message", "response failed"),
                provider=self.name, code=str(err.get("code", "")), body=data,
            )

        texts: list[str] = []
        reasoning: list[str] = []
        sources: list[Citation] = []
        tool_calls: list[ToolCall] = []
        for item in data.get("output") or []:
            kind = item.get("type")
            if kind == "message":
                for part in item.get("content") or []:
                    if part.get("type") == "output_text":
                        texts.append(part.get("text", ""))
                        for ann in part.get("annotations") or []:
                            if ann.get("type") == "url_citation" and ann.get("url"):
                                sources.append(
                                    Citation(url=ann["url"], title=ann.get("title", ""))
                                )
            elif kind == "function_call":
                tool_calls.append(self._function_call(item))
            elif kind == "reasoning":
                for summary in item.get("summary") or []:
                    if summary.get("text"):
                        reasoning.append(summary["text"])

        raw_usage = data.get("usage") or {}
        usage = {
            "prompt_tokens": raw_usage.get("input_tokens", 0),
            "completion_tokens": raw_usage.get("output_tokens", 0),
            "total_tokens": raw_usage.get("total_tokens", 0),
        } if raw_usage else {}
        self._record_usage(usage)

        return LLMResponse(
            content="".join(texts).strip(),
            thinking="\n".join(reasoning),
            tool_calls=tool_calls,
            finish_reason=data.get("status", ""),
            usage=usage,
            model=data.get("model", request.model),
            sources=sources,
            raw_response=data,
            latency_ms=latency,
        )

    async def generate_streaming(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        payload = self._payload(request, stream=True)
        tool_calls: list[ToolCall] = []
        usage: dict[str, int] = {}
        path = "/openai/v1/responses"
        async for line in self._stream_lines(path, payload, request.max_tokens):
            data_str = _sse_data(line)
            if data_str is None:
                continue
            if data_str == "[DONE]":
                break
            try:
                event = json.loads(data_str)
            except json.JSONDecodeError:
                continue
            kind = event.get("type", "")
            if kind == "response.output_text.delta":
                if event.get("delta"):
                    yield StreamChunk(text=event["delta"])
            elif kind == "response.output_item.done":
                item = event.get("item") or {}
                if item.get("type") == "function_call":
                    tool_calls.append(self._function_call(item))
            elif kind in ("response.completed", "response.done"):
                usage = (event.get("response") or {}).get("usage") or {}
                break
            elif kind in ("response.failed", "error"):
                err = event.get("error") or (event.get("response") or {}).get("error") or {}
                raise ProviderError(
                    err.get("message", "stream failed"),
                    provider=self.name, code=str(err.get("code", "")), body=event,
                )
        if tool_calls:
            yield StreamChunk(text="", tool_calls=tool_calls)
        if usage:
            self._record_usage(usage)
            yield StreamChunk(text="", metadata={"usage": usage})

    @staticmethod
    def _function_call(item: dict[str, Any]) -> ToolCall:
        return ToolCall(
            name=item.get("name", ""),
            arguments=_load_arguments(item.get("arguments")),
            id=item.get("call_id") or item.get("id", ""),
            raw=json.dumps(item),
        )


# ---------------------------------------------------------------------------
# Google Gemini (generativelanguage API)
# ---------------------------------------------------------------------------

class GeminiAdapter(ProviderAdapter):
    """Adapter for Gemini ``generateContent`` / ``streamGenerateContent``."""

    default_url = "https://generativelanguage.googleapis.com/v1beta"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.spec.api_key:
            headers["x-goog-api-key"] = self.spec.api_key
        return headers

    @staticmethod
    def _contents(
        messages: list[dict[str, Any]],
    ) -> tuple[str, list[dict[str, Any]]]:
        system: list[str] = []
        contents: list[dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role")
            if role == "system":
                system.append(msg.get("content") or "")
            elif role == "tool":
                try:
                    response = json.loads(msg.get("content") or "{}")
                except json.JSONDecodeError:
                    response = msg.get("content")
                if not isinstance(response, dict):
                    response = {"content": response}
                contents.append({
                    "role": "user",
                    "parts": [{
                        "functionResponse": {
                            "name": msg.get("name", ""),
                            "response": response,
                        },
                    }],
                })
            else:
                parts: list[dict[str, Any]] = []
                if msg.get("content"):
                    parts.append({"text": msg["content"]})
                for tc in msg.get("tool_calls") or []:
                    func = tc.get("function", {})
                    parts.append({
                        "functionCall": {
                            "name": func.get("name", ""),
                            "args": _load_arguments(func.get("arguments")),
                        },
                    })
                contents.append({
                    "role": "model" if role == "assistant" else "user",
                    "parts": parts,
                })
        return "\n\n".join(system), contents

    def _payload(self, request: LLMRequest) -> dict[str, Any]:
        system, contents = self._contents(request.messages)
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if request.tools:
            payload["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": t["function"]["name"],
                        "description": t["function"].get("description", ""),
                        "parameters": t["function"].get("parameters", {}),
                    }
                    for t in request.tools
                ],
            }]
        if self.spec.extra_params:
            payload.update(self.spec.extra_params)
        return payload

    async def generate_once(self, request: LLMRequest) -> LLMResponse:
        start = time.monotonic()
        data = await self._post_json(
            f"/models/{request.model}:generateContent", self._payload(request), request.max_tokens,
        )
        latency = (time.monotonic() - start) * 1000

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise ProviderError(f"empty response: {reason}", provider=self.name, body=data)
        candidate = candidates[0]

        texts: list[str] = []
        thoughts: list[str] = []
        tool_calls: list[ToolCall] = []
        for i, part in enumerate((candidate.get("content") or {}).get("parts") or []):
            if "functionCall" in part:
                tool_calls.append(self._function_call(part, i))
            elif part.get("thought"):
                thoughts.append(part.get("text", ""))
            elif "text" in part:
                texts.append(part["text"])

        meta = data.get("usageMetadata") or {}
        usage = self._usage(meta) if meta else {}
        self._record_usage(usage)

        return LLMResponse(
            content="".join(texts).strip(),
            thinking="\n".join(thoughts),
            tool_calls=tool_calls,
            finish_reason=candidate.get("finishReason", ""),
            usage=usage,
            model=data.get("modelVersion", request.model),
            sources=self._grounding(candidate),
            raw_response=data,
            latency_ms=latency,
        )

    async def generate_streaming(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        payload = self._payload(request)
        path = f"/models/{request.model}:streamGenerateContent?alt=sse"
        sources: list[Citation] = []
        tool_calls: list[ToolCall] = []
        usage: dict[str, int] = {}
        async for line in self._stream_lines(path, payload, request.max_tokens):
            data_str = _sse_data(line)
            if not data_str:
                continue
            try:
                data = json.loads(data_str)
            except json.JSONDecodeError:
                continue
            if data.get("usageMetadata"):
                usage = self._usage(data["usageMetadata"])
            for candidate in data.get("candidates") or []:
                for part in (candidate.get("content") or {}).get("parts") or []:
                    if "functionCall" in part:
                        tool_calls.append(self._function_call(part, len(tool_calls)))
                    elif part.get("text") and not part.get("thought"):
                        yield StreamChunk(text=part["text"])
                sources.extend(self._grounding(candidate))
        if tool_calls:
            yield StreamChunk(text="", tool_calls=tool_calls)
        self._record_usage(usage)
        extra = {k: v for k, v in (("sources", sources), ("usage", usage)) if v}
        if extra:
            yield StreamChunk(text="", metadata=extra)

    @staticmethod
    def _function_call(part: dict[str, Any], index: int) -> ToolCall:
        call = part["functionCall"]
        return ToolCall(
            name=call.get("name", ""),
            arguments=call.get("args") or {},
            id=call.get("id") or f"{call.get('name', 'call')}_{index}",
            raw=json.dumps(part),
        )

    @staticmethod
    def _usage(meta: dict[str, Any]) -> dict[str, int]:
        return {
            "prompt_tokens": meta.get("promptTokenCount", 0),
            "completion_tokens": meta.get("candidatesTokenCount", 0),
            "total_tokens": meta.get("totalTokenCount", 0),
        }

    @staticmethod
    def _grounding(candidate: dict[str, Any]) -> list[Citation]:
        grounding = candidate.get("groundingMetadata") or {}
        sources: list[Citation] = []
        for chunk in grounding.get("groundingChunks") or []:
            web = chunk.get("web") or {}
            if web.get("uri"):
                sources.append(Citation(url=web["uri"], title=web.get("title", "")))
        return sources


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "openai": OpenAIChatAdapter,
    "azure_responses": AzureResponsesAdapter,
    "gemini": GeminiAdapter,
}


def create_adapter(
    spec: ProviderSpec,
    timeout: float = 120,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderAdapter:
    """Instantiate the adapter for ``spec.api_type``."""
    try:
        cls = _ADAPTERS[spec.api_type]
    except KeyError:
        raise ValueError(f"Unsupported api_type: {spec.api_type!r}") from None
    return cls(spec, timeout=timeout, transport=transport)
