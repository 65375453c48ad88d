"""Tests for the LLM transport: error classification, retries, admission, spend and cancellation."""

import asyncio

import pytest

from src import pricing
from src.config import get_settings
from src.llm_client import (
    AuthenticationFailedError,
    CancellationToken,
    LLMClient,
    LLMNotConfiguredError,
    OperationCancelledError,
    OverloadedError,
    RateLimitedError,
    SendOptions,
    TransportError,
    UnknownModelError,
    UsageLimitExceededError,
    classify_error,
    is_retryable,
    resolve_task_tier,
)
from src.models import ChatMessage, MetaTags
from src.pricing import ModelTier
from src.providers.base import BackendError, BackendRequest, BackendResponse
from src.providers.mock import MockBackend
from src.tools.rate_limiter import AdmissionController, InMemoryUsageStore, RequestBudgetPolicy


def _msgs(text: str = "hello") -> list[ChatMessage]:
    return [ChatMessage(content=text)]


class TestClassifyError:
    def test_backend_429_with_retry_after(self) -> None:
        err = classify_error(BackendError("slow down", status_code=429, retry_after=5.0))
        assert isinstance(err, RateLimitedError)
        assert err.from_backend
        assert err.explicit_retry_after
        assert err.retry_after_seconds == 5.0
        assert is_retryable(err)

    def test_backend_429_without_retry_after_defaults_to_sixty(self) -> None:
        err = classify_error(Exception("Error code: 429 - rate limit reached"))
        assert isinstance(err, RateLimitedError)
        assert err.retry_after_seconds == 60
        assert not err.explicit_retry_after

    def test_overloaded(self) -> None:
        assert isinstance(classify_error(BackendError("busy", status_code=529)), OverloadedError)
        assert isinstance(classify_error(Exception("Overloaded")), OverloadedError)

    def test_authentication_is_permanent(self) -> None:
        err = classify_error(BackendError("nope", status_code=401))
        assert isinstance(err, AuthenticationFailedError)
        assert not is_retryable(err)
        assert isinstance(classify_error(Exception("invalid api key")), AuthenticationFailedError)

    def test_client_error_status_not_retryable(self) -> None:
        err = classify_error(BackendError("bad request", status_code=400))
        assert isinstance(err, TransportError)
        assert not is_retryable(err)

    def test_server_error_status_retryable(self) -> None:
        err = classify_error(BackendError("oops", status_code=500))
        assert isinstance(err, TransportError)
        assert is_retryable(err)

    def test_timeout_and_connection_retryable(self) -> None:
        assert is_retryable(classify_error(Exception("Request timed out")))
        assert is_retryable(classify_error(Exception("Connection reset by peer")))

    def test_non_client_errors_are_not_retryable(self) -> None:
        assert not is_retryable(ValueError("x"))


class TestRouting:
    def test_task_tier_from_config(self) -> None:
        assert resolve_task_tier("faq") == ModelTier.NANO
        assert resolve_task_tier("article") == ModelTier.FAST

    def test_unrouted_task_uses_fast(self) -> None:
        assert resolve_task_tier("something_new") == ModelTier.FAST

    def test_resolve_model(self, llm_client: LLMClient) -> None:
        assert llm_client.resolve_model(None, "article") == "gpt-5-mini"
        assert llm_client.resolve_model("haiku") == "gpt-4.1-nano"
        assert llm_client.resolve_model(ModelTier.QUALITY) == "gpt-5"

    def test_estimate_cost(self, llm_client: LLMClient) -> None:
        assert llm_client.estimate_cost(ModelTier.FAST, 4000, 1000) == pricing.cost("gpt-5-mini", 1000, 1000)


class TestSend:
    @pytest.mark.asyncio
    async def test_success_records_cost_and_spend(
        self, llm_client: LLMClient, mock_backend: MockBackend, usage_store: InMemoryUsageStore
    ) -> None:
        mock_backend.queue(BackendResponse(text="done", input_tokens=1000, output_tokens=500, cache_hit=True))
        result = await llm_client.send(_msgs(), system_prompt="be brief", options=SendOptions(task="article"))
        assert result.content == "done"
        assert result.model_id == "gpt-5-mini"
        assert result.cost_cents == pricing.cost("gpt-5-mini", 1000, 500)
        assert result.cache_hit
        assert usage_store.spent_cents("default") == result.cost_cents
        assert usage_store.window("default").concurrent == 0
        request = mock_backend.requests[0]
        assert request.system_prompt == "be brief"
        assert request.max_output_tokens == get_settings().llm.max_tokens

    @pytest.mark.asyncio
    async def test_not_configured(self, admission: AdmissionController) -> None:
        class _Unconfigured(MockBackend):
            def configured(self) -> bool:
                return False

        client = LLMClient(backend=_Unconfigured(), admission=admission)
        with pytest.raises(LLMNotConfiguredError):
            await client.send(_msgs())

    @pytest.mark.asyncio
    async def test_unknown_model(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        with pytest.raises(UnknownModelError):
            await llm_client.send(_msgs(), options=SendOptions(model="gpt-99-ultra"))
        assert mock_backend.calls == 0

    @pytest.mark.asyncio
    async def test_get_json_uses_nano_tier(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        mock_backend.queue('```json\n{"metaTitle": "T", "metaDescription": "D"}\n```')
        meta = await llm_client.get_json("Write meta tags. Return JSON.", model_type=MetaTags)
        assert meta == MetaTags(meta_title="T", meta_description="D")
        assert mock_backend.requests[0].model_id == "gpt-4.1-nano"


class TestRetry:
    @pytest.mark.asyncio
    async def test_backend_429_honors_retry_after(
        self, llm_client: LLMClient, mock_backend: MockBackend, sleeps: list[float]
    ) -> None:
        """A 429 with Retry-After: 5 waits at least 5s, then succeeds on the second attempt."""
        mock_backend.queue(BackendError("rate limited", status_code=429, retry_after=5.0), "ok")
        result = await llm_client.complete("hi")
        assert result.content == "ok"
        assert mock_backend.calls == 2
        assert len(sleeps) == 1
        assert sleeps[0] >= 5.0

    @pytest.mark.asyncio
    async def test_retry_after_beyond_backoff_cap_is_honored(
        self, llm_client: LLMClient, mock_backend: MockBackend, sleeps: list[float]
    ) -> None:
        assert get_settings().llm.max_backoff_seconds == 60.0
        mock_backend.queue(BackendError("rate limited", status_code=429, retry_after=120.0), "ok")
        result = await llm_client.complete("hi")
        assert result.content == "ok"
        assert sleeps == [120.0]

    @pytest.mark.asyncio
    async def test_exponential_backoff_then_give_up(
        self, llm_client: LLMClient, mock_backend: MockBackend, sleeps: list[float]
    ) -> None:
        mock_backend.queue(*[BackendError("busy", status_code=503) for _ in range(5)])
        with pytest.raises(OverloadedError):
            await llm_client.complete("hi")
        assert mock_backend.calls == get_settings().llm.max_attempts == 3
        assert sleeps == [4.0, 8.0]

    @pytest.mark.asyncio
    async def test_authentication_not_retried(
        self,
        llm_client: LLMClient,
        mock_backend: MockBackend,
        sleeps: list[float],
        usage_store: InMemoryUsageStore,
    ) -> None:
        mock_backend.queue(BackendError("unauthorized", status_code=401))
        with pytest.raises(AuthenticationFailedError):
            await llm_client.complete("hi")
        assert mock_backend.calls == 1
        assert sleeps == []
        assert usage_store.window("default").concurrent == 0

    @pytest.mark.asyncio
    async def test_local_admission_denial_not_retried(
        self, mock_backend: MockBackend, usage_store: InMemoryUsageStore, sleeps: list[float]
    ) -> None:
        admission = AdmissionController(store=usage_store, policies={"starter": RequestBudgetPolicy(1, 1000, 1)})
        client = LLMClient(backend=mock_backend, admission=admission, sleep=_recorder(sleeps), jitter=lambda: 0.0)
        await client.complete("first", plan="starter")
        with pytest.raises(RateLimitedError) as exc_info:
            await client.complete("second", plan="starter")
        assert not exc_info.value.from_backend
        assert exc_info.value.retry_after_seconds > 0
        assert mock_backend.calls == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_timeout_is_retryable_transport_error(self, admission: AdmissionController) -> None:
        class _Hanging(MockBackend):
            async def send(self, request: BackendRequest) -> BackendResponse:
                self.requests.append(request)
                await asyncio.sleep(10)
                raise AssertionError("unreachable")

        settings = get_settings().model_copy(deep=True)
        settings.llm.request_timeout_seconds = 0.01
        backend = _Hanging()
        client = LLMClient(backend=backend, admission=admission, settings=settings, sleep=_recorder([]))
        with pytest.raises(TransportError, match="timed out"):
            await client.complete("hi")
        assert backend.calls == settings.llm.max_attempts


def _recorder(sink: list[float]):
    async def _sleep(seconds: float) -> None:
        sink.append(seconds)

    return _sleep


class TestSpend:
    @pytest.mark.asyncio
    async def test_spend_limit_blocks_before_network(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        with pytest.raises(UsageLimitExceededError):
            await llm_client.complete("hi", spend_limit_cents=0.0)
        assert mock_backend.calls == 0

    @pytest.mark.asyncio
    async def test_spend_limit_counts_prior_spend(
        self, llm_client: LLMClient, usage_store: InMemoryUsageStore
    ) -> None:
        usage_store.record_spend("acme", 99.99)
        with pytest.raises(UsageLimitExceededError):
            await llm_client.complete("hi", tenant_id="acme", spend_limit_cents=100.0)

    @pytest.mark.asyncio
    async def test_spend_tracker_called_once_per_call(self, llm_client: LLMClient) -> None:
        seen: list[float] = []
        llm_client.register_spend_tracker(lambda cost_cents: seen.append(cost_cents))
        result = await llm_client.complete("hi", tenant_id="acme")
        assert result.cost_cents > 0
        assert seen == [result.cost_cents]

    @pytest.mark.asyncio
    async def test_async_spend_tracker(self, llm_client: LLMClient) -> None:
        seen: list[float] = []

        async def _track(cents: float) -> None:
            seen.append(cents)

        llm_client.register_spend_tracker(_track)
        result = await llm_client.complete("hi")
        assert seen == [result.cost_cents]

    @pytest.mark.asyncio
    async def test_failing_tracker_does_not_lose_result(self, llm_client: LLMClient) -> None:
        def _broken(cents: float) -> None:
            raise RuntimeError("billing db down")

        llm_client.register_spend_tracker(_broken)
        result = await llm_client.complete("hi")
        assert result.content


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_send(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError):
            await llm_client.complete("hi", cancel=token)
        assert mock_backend.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_interrupts_retry_sleep(
        self, mock_backend: MockBackend, admission: AdmissionController, usage_store: InMemoryUsageStore
    ) -> None:
        async def _long_sleep(seconds: float) -> None:
            await asyncio.sleep(3600)

        client = LLMClient(backend=mock_backend, admission=admission, sleep=_long_sleep, jitter=lambda: 0.0)
        mock_backend.queue(BackendError("busy", status_code=503), "never reached")
        token = CancellationToken()
        task = asyncio.create_task(client.complete("hi", cancel=token))
        await asyncio.sleep(0.01)
        token.cancel()
        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(task, timeout=1.0)
        assert mock_backend.calls == 1
        assert usage_store.window("default").concurrent == 0
