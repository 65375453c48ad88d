"""
Resilient LLM transport with a unified interface.

Agent code never couples to a provider: it asks for a model tier (or a task
routed to a tier in config/models.yaml) and this module handles the plumbing.

Design decisions:
  - One backend per client, selected once by build_backend()
  - Per-tenant admission control before any network I/O
  - Retry only transient errors (backend 429, overload, timeouts, 5xx)
  - Automatic cost accounting per call, with an optional spend ceiling
  - Cooperative cancellation that also interrupts retry sleeps
"""

from __future__ import annotations

import asyncio
import inspect
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional, TypeVar, Union

import structlog
from pydantic import BaseModel
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from src import pricing
from src.config import Settings, get_settings
from src.errors import (
    AuthenticationFailedError,
    LLMClientError,
    LLMNotConfiguredError,
    OperationCancelledError,
    OverloadedError,
    RateLimitedError,
    TransportError,
    UsageLimitExceededError,
    is_retryable,
)
from src.models import CallResult, ChatMessage
from src.observability import metrics as obs_metrics
from src.pricing import ModelTier, UnknownModelError
from src.providers.base import BackendRequest, BackendResponse, LLMBackend
from src.providers.registry import build_backend
from src.tools.json_recovery import recover, recover_as
from src.tools.rate_limiter import AdmissionController

logger = structlog.get_logger()
T = TypeVar("T", bound=BaseModel)

__all__ = [
    "AuthenticationFailedError",
    "CancellationToken",
    "LLMClient",
    "LLMClientError",
    "LLMNotConfiguredError",
    "OperationCancelledError",
    "OverloadedError",
    "RateLimitedError",
    "SendOptions",
    "TransportError",
    "UnknownModelError",
    "UsageLimitExceededError",
    "classify_error",
    "is_retryable",
    "resolve_task_tier",
]

SpendTracker = Callable[[float], Union[None, Awaitable[None]]]


class CancellationToken:
    """Cooperative cancellation shared by a pipeline run and its transport calls."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("Operation cancelled")


@dataclass
class SendOptions:
    """Per-call options for LLMClient.send()."""

    # Tier, legacy alias or concrete model id; None routes by task (fast if no task)
    model: Union[ModelTier, str, None] = None
    task: str = ""
    max_output_tokens: Optional[int] = None
    temperature: Optional[float] = None
    tenant_id: str = "default"
    plan: str = "pro"
    spend_limit_cents: Optional[float] = None
    cancel: Optional[CancellationToken] = None


def resolve_task_tier(task: str) -> ModelTier:
    """Resolve the tier for a task from config/models.yaml; fast when unrouted."""
    tasks_cfg = get_settings().model_routing.get("tasks", {}) or {}
    tier_str = (tasks_cfg.get(task) or {}).get("tier", "")
    if not tier_str:
        return ModelTier.FAST
    return pricing.parse_tier(str(tier_str))


def classify_error(exc: BaseException) -> LLMClientError:
    """Map a backend failure onto the error taxonomy.

    Uses the HTTP status when the SDK exposed one, otherwise falls back to
    matching the error message.
    """
    if isinstance(exc, LLMClientError):
        return exc
    status = getattr(exc, "status_code", None)
    msg = str(exc)
    lowered = msg.lower()

    if status == 429 or (status is None and ("429" in msg or "rate limit" in lowered)):
        retry_after = getattr(exc, "retry_after", None)
        return RateLimitedError(
            "Rate limited by the model provider.",
            retry_after_seconds=retry_after if retry_after is not None else 60,
            from_backend=True,
            explicit_retry_after=retry_after is not None,
        )
    if status in (503, 529) or "overloaded" in lowered or (status is None and ("529" in msg or "503" in msg)):
        return OverloadedError("The model provider is temporarily overloaded. Please try again shortly.")
    if status in (401, 403) or (
        status is None and ("401" in msg or "403" in msg or "api key" in lowered or "unauthorized" in lowered)
    ):
        return AuthenticationFailedError("The model provider rejected the configured credentials.")
    if status is not None:
        return TransportError(msg[:500], retryable=status >= 500, status_code=status)
    if "timeout" in lowered or "timed out" in lowered or "connection" in lowered or "reset" in lowered:
        return TransportError(msg[:500], retryable=True)
    # Default: treat unknown as transient (retry a few times)
    return TransportError(msg[:500], retryable=True)


class LLMClient:
    """
    Resilient transport over a single LLM backend.

    - Admission: one slot per send() from the AdmissionController, released on every exit path.
    - Retries only retryable errors, at most max_attempts times.
    - Spend: optional per-tenant ceiling, plus an instance-level spend tracker hook.
    """

    def __init__(
        self,
        backend: Optional[LLMBackend] = None,
        admission: Optional[AdmissionController] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._settings = settings or get_settings()
        self._backend = backend if backend is not None else build_backend(self._settings)
        self._admission = admission if admission is not None else AdmissionController()
        self._sleep = sleep
        self._jitter = jitter
        self._spend_tracker: Optional[SpendTracker] = None

    @property
    def backend(self) -> LLMBackend:
        return self._backend

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    def configured(self) -> bool:
        return self._backend.configured()

    def register_spend_tracker(self, fn: Optional[SpendTracker]) -> None:
        """Install (or clear with None) the hook called as fn(cost_cents) after each billed call."""
        self._spend_tracker = fn

    def resolve_model(self, model: Union[ModelTier, str, None], task: str = "") -> str:
        if model is None:
            model = resolve_task_tier(task) if task else ModelTier.FAST
        return pricing.resolve_model(model, self._backend.provider)

    def estimate_cost(
        self,
        model: Union[ModelTier, str],
        input_chars: int,
        expected_output_tokens: int = 1000,
    ) -> float:
        """Pre-flight cost estimate in cents (approximation, not billing-accurate)."""
        return pricing.estimate(self.resolve_model(model), input_chars, expected_output_tokens)

    # ── Retry policy ──

    def _backoff(self, retry_state: RetryCallState) -> float:
        """Wait before the next attempt: 2**n (n = attempt about to start) or the server's Retry-After."""
        next_attempt = retry_state.attempt_number + 1
        wait = min(float(2**next_attempt) + self._jitter(), self._settings.llm.max_backoff_seconds)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitedError) and exc.explicit_retry_after:
            # The server's Retry-After is honored as given, even past the local cap
            wait = max(wait, float(exc.retry_after_seconds))
        return wait

    async def _pause(self, seconds: float, cancel: Optional[CancellationToken]) -> None:
        """Sleep between attempts; returns early with OperationCancelledError if cancelled."""
        if cancel is None:
            await self._sleep(seconds)
            return
        cancel.raise_if_cancelled()
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, waiter):
                if not fut.done():
                    fut.cancel()
        cancel.raise_if_cancelled()

    async def _attempt(self, request: BackendRequest, task: str) -> BackendResponse:
        timeout = self._settings.llm.request_timeout_seconds
        async with obs_metrics.track_llm_call(
            model=request.model_id,
            task=task or "unknown",
            provider=self._backend.provider.value,
        ):
            try:
                return await asyncio.wait_for(self._backend.send(request), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise TransportError(f"LLM request timed out after {timeout:.0f}s", retryable=True) from e
            except LLMClientError:
                raise
            except Exception as e:
                raise classify_error(e) from e

    async def _send_with_retry(self, request: BackendRequest, options: SendOptions) -> BackendResponse:
        task = options.task or "unknown"

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "llm_retry",
                attempt=rs.attempt_number,
                wait_seconds=round(rs.next_action.sleep, 2) if rs.next_action else None,
                model=request.model_id,
                task=task,
                error_type=type(exc).__name__ if exc else "unknown",
                error=str(exc)[:200] if exc else "unknown",
            )
            obs_metrics.record_llm_retry(
                model=request.model_id,
                task=task,
                error_type=type(exc).__name__ if exc else "unknown",
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.llm.max_attempts),
            wait=self._backoff,
            retry=retry_if_exception(is_retryable),
            sleep=lambda seconds: self._pause(seconds, options.cancel),
            before_sleep=_before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if options.cancel:
                    options.cancel.raise_if_cancelled()
                return await self._attempt(request, task)
        raise TransportError("LLM request was never attempted", retryable=False)

    # ── Public API ──

    def _check_spend(self, options: SendOptions, model_id: str, input_chars: int) -> None:
        """Raise UsageLimitExceededError if this call would push the tenant past its ceiling."""
        if options.spend_limit_cents is None:
            return
        spent = self._admission.store.spent_cents(options.tenant_id)
        next_cost = pricing.estimate(model_id, input_chars)
        if spent + next_cost > options.spend_limit_cents:
            raise UsageLimitExceededError(
                f"Spend limit of {options.spend_limit_cents:.2f} cents reached "
                f"(spent {spent:.2f}, next call ~{next_cost:.2f})"
            )

    async def _notify_spend(self, tenant_id: str, result: CallResult) -> None:
        if self._spend_tracker is None or result.cost_cents <= 0:
            return
        try:
            outcome = self._spend_tracker(result.cost_cents)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            # The call is already billed; a tracker failure must not discard its result
            logger.warning("spend_tracker_failed", tenant_id=tenant_id, error=str(e)[:200])

    async def send(
        self,
        messages: list[ChatMessage],
        system_prompt: Optional[str] = None,
        options: Optional[SendOptions] = None,
    ) -> CallResult:
        """
        Send one chat request and return content, usage and cost.

        Raises:
            LLMNotConfiguredError: no credential for the configured backend.
            UnknownModelError: the requested model cannot be resolved or priced.
            UsageLimitExceededError: tenant spend ceiling would be exceeded.
            RateLimitedError: admission denied (not retried) or backend 429 after retries.
            OverloadedError / TransportError: backend still failing after retries.
            AuthenticationFailedError: credential rejected (no retry).
            OperationCancelledError: the cancel token fired.
        """
        options = options or SendOptions()
        if not self.configured():
            raise LLMNotConfiguredError(
                f"No API key configured for provider '{self._backend.provider.value}'."
            )
        if options.cancel:
            options.cancel.raise_if_cancelled()

        model_id = self.resolve_model(options.model, options.task)
        input_chars = sum(len(m.content) for m in messages) + len(system_prompt or "")
        self._check_spend(options, model_id, input_chars)

        request = BackendRequest(
            model_id=model_id,
            messages=list(messages),
            system_prompt=system_prompt,
            max_output_tokens=options.max_output_tokens or self._settings.llm.max_tokens,
            temperature=(
                options.temperature if options.temperature is not None else self._settings.llm.temperature
            ),
        )

        try:
            async with self._admission.slot(options.tenant_id, options.plan):
                response = await self._send_with_retry(request, options)
        except LLMClientError as e:
            logger.error(
                "llm_call_failed",
                model=model_id,
                task=options.task or "unknown",
                tenant_id=options.tenant_id,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            raise

        cost_cents = pricing.cost(model_id, response.input_tokens, response.output_tokens)
        result = CallResult(
            content=response.text,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_cents=cost_cents,
            model_id=model_id,
            cache_hit=response.cache_hit,
        )
        self._admission.store.record_spend(
            options.tenant_id, cost_cents, response.input_tokens + response.output_tokens
        )
        obs_metrics.record_llm_tokens(
            model=model_id,
            task=options.task or "unknown",
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        obs_metrics.record_llm_cost(model=model_id, task=options.task or "unknown", cost_cents=cost_cents)
        await self._notify_spend(options.tenant_id, result)
        logger.debug(
            "llm_call_completed",
            model=model_id,
            task=options.task or "unknown",
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost_cents=cost_cents,
            cache_hit=result.cache_hit,
        )
        return result

    async def complete(self, prompt: str, system: Optional[str] = None, **opts: Any) -> CallResult:
        """Single-turn convenience wrapper around send()."""
        return await self.send([ChatMessage(content=prompt)], system_prompt=system, options=SendOptions(**opts))

    async def get_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        model_type: Optional[type[T]] = None,
        **opts: Any,
    ) -> Any:
        """Send on the nano tier (unless overridden) and recover structured JSON from the reply.

        Raises:
            RecoveryError: if no JSON value can be recovered (or it fails validation).
        """
        opts.setdefault("model", ModelTier.NANO)
        result = await self.complete(prompt, system, **opts)
        if model_type is not None:
            return recover_as(result.content, model_type)
        return recover(result.content)
