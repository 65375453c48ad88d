"""
Prometheus metrics for the content pipeline.

All metrics are no-op when observability.metrics_enabled is False.
Exposes track_llm_call, record_llm_*, record_admission_denied,
track_pipeline_step, pipeline_started/completed, start_server.
"""

from __future__ import annotations

import contextlib
import threading
import time
from typing import Any

import structlog
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server as prometheus_start_http_server,
)

from src.config import get_settings

logger = structlog.get_logger()


def _enabled() -> bool:
    return bool(get_settings().observability.metrics_enabled)


# Lazy registry: only create metrics when enabled and first used
_metrics_created = False


def _ensure_metrics() -> bool:
    global _metrics_created
    if _metrics_created or not _enabled():
        return _metrics_created
    _create_metrics()
    _metrics_created = True
    return True


def _create_metrics() -> None:
    """Create all Prometheus metrics (called once when enabled)."""
    # Pipeline (business)
    _pipeline_duration = Histogram(
        "pipeline_run_duration_seconds",
        "Content pipeline run duration in seconds",
        ["status"],
        buckets=[5, 15, 30, 60, 120, 300],
    )
    _pipeline_cost = Histogram(
        "pipeline_run_cost_cents",
        "Content pipeline run cost in cents",
        ["status"],
        buckets=[1, 2, 5, 10, 25, 50],
    )
    _pipeline_runs = Counter(
        "pipeline_runs_total",
        "Content pipeline runs by final status",
        ["status"],
    )
    _active_runs = Gauge(
        "pipeline_active_runs",
        "Number of pipeline runs currently in progress",
        [],
    )
    _step_duration = Histogram(
        "pipeline_step_duration_seconds",
        "Duration per pipeline step",
        ["step"],
        buckets=[1, 5, 15, 30, 60],
    )

    # LLM (operational)
    _llm_duration = Histogram(
        "llm_call_duration_seconds",
        "LLM call latency",
        ["model", "task", "provider"],
        buckets=[0.5, 1, 2, 5, 10, 30, 60],
    )
    _llm_tokens = Counter(
        "llm_call_tokens_total",
        "Tokens consumed",
        ["model", "task", "direction"],
    )
    _llm_cost = Counter(
        "llm_call_cost_cents",
        "Cost per call in cents",
        ["model", "task"],
    )
    _llm_errors = Counter(
        "llm_call_errors_total",
        "LLM call errors",
        ["model", "task", "error_type"],
    )
    _llm_retries = Counter(
        "llm_call_retries_total",
        "LLM call retries by triggering error",
        ["model", "task", "error_type"],
    )

    # Admission
    _admission_denied = Counter(
        "admission_denied_total",
        "Calls denied by per-tenant admission control",
        ["plan"],
    )

    _registry = {
        "pipeline_duration": _pipeline_duration,
        "pipeline_cost": _pipeline_cost,
        "pipeline_runs": _pipeline_runs,
        "active_runs": _active_runs,
        "step_duration": _step_duration,
        "llm_duration": _llm_duration,
        "llm_tokens": _llm_tokens,
        "llm_cost": _llm_cost,
        "llm_errors": _llm_errors,
        "llm_retries": _llm_retries,
        "admission_denied": _admission_denied,
    }
    setattr(_MetricsCollector, "_registry", _registry)


class _MetricsCollector:
    """Collector that delegates to Prometheus when enabled, no-op otherwise."""

    _registry: dict[str, Any] = {}

    def _get(self, name: str) -> Any:
        _ensure_metrics()
        return self._registry.get(name)

    # --- LLM ---
    @contextlib.asynccontextmanager
    async def track_llm_call(self, model: str = "", task: str = "", provider: str = ""):
        m = self._get("llm_duration")
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            err = self._get("llm_errors")
            if err:
                err.labels(
                    model=model or "unknown",
                    task=task or "unknown",
                    error_type=type(e).__name__,
                ).inc()
            raise
        finally:
            if m:
                m.labels(
                    model=model or "unknown",
                    task=task or "unknown",
                    provider=provider or "unknown",
                ).observe(time.perf_counter() - start)

    def record_llm_tokens(
        self,
        model: str = "",
        task: str = "",
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        t = self._get("llm_tokens")
        if t:
            t.labels(model=model or "unknown", task=task or "unknown", direction="input").inc(input_tokens)
            t.labels(model=model or "unknown", task=task or "unknown", direction="output").inc(output_tokens)

    def record_llm_cost(self, model: str = "", task: str = "", cost_cents: float = 0.0) -> None:
        c = self._get("llm_cost")
        if c and cost_cents > 0:
            c.labels(model=model or "unknown", task=task or "unknown").inc(cost_cents)

    def record_llm_retry(self, model: str = "", task: str = "", error_type: str = "") -> None:
        c = self._get("llm_retries")
        if c:
            c.labels(
                model=model or "unknown",
                task=task or "unknown",
                error_type=error_type or "unknown",
            ).inc()

    # --- Admission ---
    def record_admission_denied(self, plan: str = "") -> None:
        c = self._get("admission_denied")
        if c:
            c.labels(plan=(plan or "unknown")[:32]).inc()

    # --- Pipeline ---
    @contextlib.contextmanager
    def track_pipeline_step(self, step: str):
        h = self._get("step_duration")
        start = time.perf_counter()
        try:
            yield
        finally:
            if h:
                h.labels(step=(step or "unknown")[:32]).observe(time.perf_counter() - start)

    def pipeline_started(self) -> None:
        g = self._get("active_runs")
        if g:
            g.inc()

    def pipeline_completed(
        self,
        status: str = "completed",
        cost_cents: float = 0.0,
        duration_seconds: float = 0.0,
    ) -> None:
        g = self._get("active_runs")
        if g:
            g.dec()
        status = status or "completed"
        runs = self._get("pipeline_runs")
        d = self._get("pipeline_duration")
        c = self._get("pipeline_cost")
        if runs:
            runs.labels(status=status).inc()
        if d and duration_seconds >= 0:
            d.labels(status=status).observe(duration_seconds)
        if c and cost_cents >= 0:
            c.labels(status=status).observe(cost_cents)

    def start_server(self, port: int = 8000) -> None:
        if not _enabled():
            return
        _ensure_metrics()

        def run() -> None:
            try:
                prometheus_start_http_server(port, addr="0.0.0.0")
            except OSError as e:
                logger.warning("metrics_server_failed", port=port, error=str(e))

        t = threading.Thread(target=run, daemon=True)
        t.start()


metrics = _MetricsCollector()
