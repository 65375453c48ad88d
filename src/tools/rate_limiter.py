"""
Per-tenant admission control for LLM calls.

A sliding 60-second request window plus a concurrency counter per tenant,
checked before any network call is made. Plan policies come from
config/rate_limits.yaml (falling back to the built-in table).

State lives in an injected UsageStore. The bundled InMemoryUsageStore keeps it
in process memory: several worker processes do not share counts, and tenant
windows are never evicted for the lifetime of the process.
"""

from __future__ import annotations

import math
import time
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional, Protocol

import structlog

from src.config import get_settings
from src.errors import RateLimitedError
from src.observability import metrics as obs_metrics

logger = structlog.get_logger()

WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class RequestBudgetPolicy:
    """Admission limits for one plan tier."""

    max_requests_per_minute: int
    max_tokens_per_minute: int
    max_concurrent: int


DEFAULT_PLAN = "starter"

DEFAULT_POLICIES: dict[str, RequestBudgetPolicy] = {
    "starter": RequestBudgetPolicy(10, 50_000, 2),
    "pro": RequestBudgetPolicy(30, 200_000, 5),
    "pro_plus": RequestBudgetPolicy(60, 500_000, 10),
}


def load_policies() -> dict[str, RequestBudgetPolicy]:
    """Built-in plan policies overlaid with `plans:` from config/rate_limits.yaml."""
    policies = dict(DEFAULT_POLICIES)
    for plan, cfg in (get_settings().rate_limits.get("plans") or {}).items():
        base = policies.get(plan, DEFAULT_POLICIES[DEFAULT_PLAN])
        policies[plan] = RequestBudgetPolicy(
            max_requests_per_minute=int(cfg.get("max_requests_per_minute", base.max_requests_per_minute)),
            max_tokens_per_minute=int(cfg.get("max_tokens_per_minute", base.max_tokens_per_minute)),
            max_concurrent=int(cfg.get("max_concurrent", base.max_concurrent)),
        )
    return policies


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    retry_after_seconds: int = 0


@dataclass
class RateWindow:
    """Rolling usage for one tenant."""

    requests: deque[float] = field(default_factory=deque)
    concurrent: int = 0
    tokens: int = 0
    spent_cents: float = 0.0


class UsageStore(Protocol):
    """Backing store for admission and spend state."""

    def admit(self, tenant_id: str, policy: RequestBudgetPolicy) -> AdmissionDecision: ...

    def release(self, tenant_id: str) -> None: ...

    def record_spend(self, tenant_id: str, cost_cents: float, tokens: int = 0) -> None: ...

    def spent_cents(self, tenant_id: str) -> float: ...


class InMemoryUsageStore:
    """Process-local UsageStore. Not shared across processes."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}

    def window(self, tenant_id: str) -> RateWindow:
        """Get or lazily create the tenant's window."""
        if tenant_id not in self._windows:
            self._windows[tenant_id] = RateWindow()
        return self._windows[tenant_id]

    def _prune(self, window: RateWindow, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while window.requests and window.requests[0] <= cutoff:
            window.requests.popleft()

    def admit(self, tenant_id: str, policy: RequestBudgetPolicy) -> AdmissionDecision:
        now = self._clock()
        window = self.window(tenant_id)
        self._prune(window, now)

        if len(window.requests) >= policy.max_requests_per_minute:
            oldest = window.requests[0]
            retry_after = math.ceil(oldest + WINDOW_SECONDS - now)
            return AdmissionDecision(allowed=False, retry_after_seconds=max(retry_after, 1))

        if window.concurrent >= policy.max_concurrent:
            return AdmissionDecision(allowed=False, retry_after_seconds=1)

        window.requests.append(now)
        window.concurrent += 1
        return AdmissionDecision(allowed=True)

    def release(self, tenant_id: str) -> None:
        window = self._windows.get(tenant_id)
        if window and window.concurrent > 0:
            window.concurrent -= 1

    def record_spend(self, tenant_id: str, cost_cents: float, tokens: int = 0) -> None:
        window = self.window(tenant_id)
        window.tokens += tokens
        window.spent_cents = round(window.spent_cents + cost_cents, 2)

    def spent_cents(self, tenant_id: str) -> float:
        window = self._windows.get(tenant_id)
        return window.spent_cents if window else 0.0


class AdmissionController:
    """Decides allow/deny for a tenant's next call before any network I/O."""

    def __init__(
        self,
        store: Optional[UsageStore] = None,
        policies: Optional[dict[str, RequestBudgetPolicy]] = None,
    ) -> None:
        self.store: UsageStore = store if store is not None else InMemoryUsageStore()
        self._policies = policies if policies is not None else load_policies()

    def policy_for(self, plan: str) -> RequestBudgetPolicy:
        """Get the policy for a plan; unknown plans get the starter policy."""
        if plan in self._policies:
            return self._policies[plan]
        logger.warning("unknown_plan_tier", plan=plan, using=DEFAULT_PLAN)
        return self._policies[DEFAULT_PLAN]

    def try_admit(self, tenant_id: str, plan: str) -> AdmissionDecision:
        decision = self.store.admit(tenant_id, self.policy_for(plan))
        if not decision.allowed:
            logger.warning(
                "admission_denied",
                tenant_id=tenant_id,
                plan=plan,
                retry_after_seconds=decision.retry_after_seconds,
            )
            obs_metrics.record_admission_denied(plan=plan)
        return decision

    def release(self, tenant_id: str) -> None:
        self.store.release(tenant_id)

    @asynccontextmanager
    async def slot(self, tenant_id: str, plan: str) -> AsyncIterator[None]:
        """Hold one admitted call slot; released exactly once on every exit path.

        Raises:
            RateLimitedError: if the tenant is over its request or concurrency limit.
        """
        decision = self.try_admit(tenant_id, plan)
        if not decision.allowed:
            raise RateLimitedError(
                f"Rate limit exceeded. Please wait {decision.retry_after_seconds} seconds.",
                retry_after_seconds=decision.retry_after_seconds,
            )
        try:
            yield
        finally:
            self.release(tenant_id)
