"""Tests for per-tenant admission control: sliding window, concurrency, plans and spend."""

import pytest

from src.errors import RateLimitedError, is_retryable
from src.tools.rate_limiter import (
    DEFAULT_POLICIES,
    AdmissionController,
    InMemoryUsageStore,
    RequestBudgetPolicy,
    load_policies,
)


def _admit_and_release(controller: AdmissionController, tenant: str, plan: str, n: int) -> None:
    for _ in range(n):
        assert controller.try_admit(tenant, plan).allowed
        controller.release(tenant)


class TestSlidingWindow:
    def test_starter_eleventh_request_denied(self, admission: AdmissionController) -> None:
        """Starter allows 10 requests per minute; the 11th within the window is denied."""
        _admit_and_release(admission, "t1", "starter", 10)
        decision = admission.try_admit("t1", "starter")
        assert not decision.allowed
        assert 0 < decision.retry_after_seconds <= 60

    def test_retry_after_counts_down_from_oldest_request(self, admission: AdmissionController, clock) -> None:
        _admit_and_release(admission, "t1", "starter", 10)
        clock.advance(15)
        decision = admission.try_admit("t1", "starter")
        assert not decision.allowed
        assert decision.retry_after_seconds == 45

    def test_window_slides_after_sixty_seconds(self, admission: AdmissionController, clock) -> None:
        _admit_and_release(admission, "t1", "starter", 10)
        clock.advance(60)
        assert admission.try_admit("t1", "starter").allowed

    def test_tenants_are_isolated(self, admission: AdmissionController) -> None:
        _admit_and_release(admission, "t1", "starter", 10)
        assert not admission.try_admit("t1", "starter").allowed
        assert admission.try_admit("t2", "starter").allowed

    def test_pro_plan_allows_more(self, admission: AdmissionController) -> None:
        _admit_and_release(admission, "t1", "pro", 30)
        assert not admission.try_admit("t1", "pro").allowed


class TestConcurrency:
    def test_concurrency_cap_denies_with_one_second(self, admission: AdmissionController) -> None:
        assert admission.try_admit("t1", "starter").allowed
        assert admission.try_admit("t1", "starter").allowed
        decision = admission.try_admit("t1", "starter")
        assert not decision.allowed
        assert decision.retry_after_seconds == 1

    def test_release_restores_capacity(self, admission: AdmissionController) -> None:
        admission.try_admit("t1", "starter")
        admission.try_admit("t1", "starter")
        admission.release("t1")
        assert admission.try_admit("t1", "starter").allowed

    def test_release_never_goes_negative(self, usage_store: InMemoryUsageStore) -> None:
        usage_store.release("t1")
        usage_store.window("t1")
        usage_store.release("t1")
        assert usage_store.window("t1").concurrent == 0


class TestSlot:
    @pytest.mark.asyncio
    async def test_denied_slot_raises_local_rate_limit(self, admission: AdmissionController) -> None:
        admission.try_admit("t1", "starter")
        admission.try_admit("t1", "starter")
        with pytest.raises(RateLimitedError) as exc_info:
            async with admission.slot("t1", "starter"):
                pass
        assert exc_info.value.retry_after_seconds == 1
        assert not exc_info.value.from_backend
        assert not is_retryable(exc_info.value)

    @pytest.mark.asyncio
    async def test_slot_released_on_error(
        self, admission: AdmissionController, usage_store: InMemoryUsageStore
    ) -> None:
        with pytest.raises(ValueError):
            async with admission.slot("t1", "pro"):
                assert usage_store.window("t1").concurrent == 1
                raise ValueError("boom")
        assert usage_store.window("t1").concurrent == 0


class TestPolicies:
    def test_unknown_plan_falls_back_to_starter(self, admission: AdmissionController) -> None:
        assert admission.policy_for("enterprise") == DEFAULT_POLICIES["starter"]

    def test_yaml_policies_match_builtin_table(self) -> None:
        policies = load_policies()
        assert policies["starter"] == RequestBudgetPolicy(10, 50_000, 2)
        assert policies["pro_plus"].max_concurrent == 10

    def test_custom_policy_table(self, usage_store: InMemoryUsageStore) -> None:
        controller = AdmissionController(
            store=usage_store,
            policies={"starter": RequestBudgetPolicy(1, 1000, 1)},
        )
        _admit_and_release(controller, "t1", "starter", 1)
        assert not controller.try_admit("t1", "starter").allowed


def test_spend_is_tracked_on_the_cent_grid(usage_store: InMemoryUsageStore) -> None:
    usage_store.record_spend("t1", 0.1, tokens=100)
    usage_store.record_spend("t1", 0.2, tokens=50)
    assert usage_store.spent_cents("t1") == 0.3
    assert usage_store.window("t1").tokens == 150
    assert usage_store.spent_cents("unknown") == 0.0
