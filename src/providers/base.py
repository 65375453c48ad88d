"""Backend capability shared by every LLM provider implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from src.models import ChatMessage
from src.pricing import ModelProvider


@dataclass(frozen=True)
class BackendRequest:
    """One provider-neutral chat call."""

    model_id: str
    messages: list[ChatMessage]
    system_prompt: Optional[str] = None
    max_output_tokens: int = 4096
    temperature: float = 0.7


@dataclass(frozen=True)
class BackendResponse:
    """Standardized response from any backend."""

    text: str
    input_tokens: int
    output_tokens: int
    cache_hit: bool = False
    raw_metadata: dict = field(default_factory=dict)


class BackendError(Exception):
    """Provider failure with whatever HTTP context the SDK exposed."""

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class LLMBackend(ABC):
    """Abstract interface for LLM backends.

    The transport never sees raw SDK objects: implementations translate their
    provider's errors into BackendError and their replies into BackendResponse.
    """

    @property
    @abstractmethod
    def provider(self) -> ModelProvider:
        ...

    @abstractmethod
    def configured(self) -> bool:
        """True when the backend has the credentials it needs."""

    @abstractmethod
    async def send(self, request: BackendRequest) -> BackendResponse:
        ...

    async def close(self) -> None:
        """Release network resources held by the backend."""
        pass
