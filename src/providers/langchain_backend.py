"""
LangChain-backed LLM backend for OpenAI, Anthropic and Gemini.

SDK-level retries are disabled (max_retries=0): the transport owns the retry
policy, so a single send() here is exactly one network attempt. Chat model
instances are created lazily per (model, max_tokens, temperature) and reused.
"""

from __future__ import annotations

import math
from typing import Any, Optional

import structlog
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from src.pricing import CHARS_PER_TOKEN, ModelProvider
from src.providers.base import BackendError, BackendRequest, BackendResponse, LLMBackend

logger = structlog.get_logger()


def _status_of(exc: BaseException) -> Optional[int]:
    """Best-effort HTTP status from an SDK exception (openai, anthropic, google)."""
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _retry_after_of(exc: BaseException) -> Optional[float]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text_of(content: Any) -> str:
    """Flatten LangChain message content (str or list of content blocks) to text."""
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


class LangChainBackend(LLMBackend):
    """One provider's chat models behind the LLMBackend interface."""

    def __init__(self, provider: ModelProvider, api_key: str, timeout_seconds: float = 55.0) -> None:
        if provider == ModelProvider.MOCK:
            raise ValueError("LangChainBackend does not serve the mock provider")
        self._provider = provider
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._models: dict[tuple[str, int, float], BaseChatModel] = {}

    @property
    def provider(self) -> ModelProvider:
        return self._provider

    def configured(self) -> bool:
        return bool(self._api_key and self._api_key.strip())

    def _model(self, model_id: str, max_tokens: int, temperature: float) -> BaseChatModel:
        key = (model_id, max_tokens, temperature)
        if key in self._models:
            return self._models[key]
        if self._provider == ModelProvider.OPENAI:
            model: BaseChatModel = ChatOpenAI(
                model=model_id,
                api_key=self._api_key,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self._timeout,
                max_retries=0,
            )
        elif self._provider == ModelProvider.ANTHROPIC:
            model = ChatAnthropic(
                model=model_id,
                api_key=self._api_key,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self._timeout,
                max_retries=0,
            )
        else:
            model = ChatGoogleGenerativeAI(
                model=model_id,
                google_api_key=self._api_key,
                temperature=temperature,
                max_output_tokens=max_tokens,
                timeout=self._timeout,
                max_retries=0,
            )
        self._models[key] = model
        return model

    def _messages(self, request: BackendRequest) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if request.system_prompt:
            messages.append(SystemMessage(content=request.system_prompt))
        for m in request.messages:
            messages.append(HumanMessage(content=m.content) if m.role == "user" else AIMessage(content=m.content))
        return messages

    async def send(self, request: BackendRequest) -> BackendResponse:
        model = self._model(request.model_id, request.max_output_tokens, request.temperature)
        messages = self._messages(request)
        try:
            response = await model.ainvoke(messages)
        except Exception as e:
            raise BackendError(str(e), status_code=_status_of(e), retry_after=_retry_after_of(e)) from e

        text = _text_of(response.content)
        usage = getattr(response, "usage_metadata", None) or {}
        input_tokens = usage.get("input_tokens")
        output_tokens = usage.get("output_tokens")
        if input_tokens is None or output_tokens is None:
            # Some providers omit usage on certain responses; fall back to the char heuristic
            input_chars = sum(len(_text_of(m.content)) for m in messages)
            input_tokens = math.ceil(input_chars / CHARS_PER_TOKEN)
            output_tokens = math.ceil(len(text) / CHARS_PER_TOKEN)
            logger.debug("usage_metadata_missing", provider=self._provider.value, model=request.model_id)
        cache_read = (usage.get("input_token_details") or {}).get("cache_read") or 0
        return BackendResponse(
            text=text,
            input_tokens=int(input_tokens),
            output_tokens=int(output_tokens),
            cache_hit=cache_read > 0,
            raw_metadata={"provider": self._provider.value, "model": request.model_id},
        )
