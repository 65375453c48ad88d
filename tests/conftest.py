"""Shared pytest fixtures for content pipeline tests."""

from __future__ import annotations

import json

import pytest

from src.llm_client import LLMClient
from src.providers.mock import MockBackend
from src.tools.rate_limiter import DEFAULT_POLICIES, AdmissionController, InMemoryUsageStore


class FakeClock:
    """Manually advanced time source for the usage store."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def usage_store(clock: FakeClock) -> InMemoryUsageStore:
    return InMemoryUsageStore(clock=clock)


@pytest.fixture
def admission(usage_store: InMemoryUsageStore) -> AdmissionController:
    return AdmissionController(store=usage_store, policies=dict(DEFAULT_POLICIES))


@pytest.fixture
def mock_backend() -> MockBackend:
    return MockBackend()


@pytest.fixture
def sleeps() -> list[float]:
    """Every backoff the client asked to sleep, in order."""
    return []


@pytest.fixture
def llm_client(mock_backend: MockBackend, admission: AdmissionController, sleeps: list[float]) -> LLMClient:
    """Client over the mock backend; retries record their wait instead of sleeping."""

    async def _no_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return LLMClient(backend=mock_backend, admission=admission, sleep=_no_sleep, jitter=lambda: 0.0)


@pytest.fixture
def outline_json() -> str:
    return json.dumps(
        {
            "title": "Best Running Shoes for Beginners",
            "metaTitle": "Best Running Shoes (2026 Guide)",
            "metaDescription": "How to pick your first pair of running shoes.",
            "headings": [
                {"level": 2, "text": "How to Choose", "points": ["Fit", "Cushioning"], "wordCount": 400},
                {"level": 2, "text": "Top Picks", "points": ["Road", "Trail"], "wordCount": 600},
            ],
            "faqs": [{"question": "How often should I replace shoes?", "answer": "Every 300-500 miles."}],
        }
    )
