"""Deterministic offline backend for dry runs and tests."""

from __future__ import annotations

import json
import math
from collections import deque
from typing import Union

from src.pricing import CHARS_PER_TOKEN, ModelProvider
from src.providers.base import BackendRequest, BackendResponse, LLMBackend

Scripted = Union[str, BackendResponse, BaseException]


def _default_reply(request: BackendRequest) -> str:
    """Canned reply shaped by what the prompt asks for."""
    prompt = request.messages[-1].content if request.messages else ""
    if "JSON array" in prompt:
        return "[]"
    if "JSON" in prompt:
        return json.dumps(
            {
                "title": "Mock Article",
                "metaTitle": "Mock Article",
                "metaDescription": "Deterministic output from the offline backend.",
                "headings": [
                    {"level": 2, "text": "Overview", "points": ["What it is"]},
                    {"level": 2, "text": "Details", "points": ["How it works"]},
                ],
                "faqs": [],
            }
        )
    return f"## Mock response\n\nGenerated offline by model={request.model_id}."


class MockBackend(LLMBackend):
    """Replays scripted replies in order, then falls back to canned output.

    Scripted entries may be plain text, a full BackendResponse, or an
    exception instance, which is raised instead of replying.
    """

    def __init__(self, script: list[Scripted] | None = None) -> None:
        self._script: deque[Scripted] = deque(script or [])
        self.requests: list[BackendRequest] = []

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.MOCK

    def configured(self) -> bool:
        return True

    def queue(self, *items: Scripted) -> None:
        self._script.extend(items)

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def send(self, request: BackendRequest) -> BackendResponse:
        self.requests.append(request)
        item: Scripted = self._script.popleft() if self._script else _default_reply(request)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, BackendResponse):
            return item

        input_chars = sum(len(m.content) for m in request.messages) + len(request.system_prompt or "")
        return BackendResponse(
            text=item,
            input_tokens=max(math.ceil(input_chars / CHARS_PER_TOKEN), 10),
            output_tokens=max(math.ceil(len(item) / CHARS_PER_TOKEN), 1),
            raw_metadata={"provider": "mock", "model": request.model_id},
        )
