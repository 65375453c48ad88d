"""Observability: Prometheus metrics for the content pipeline."""

from src.observability.metrics import metrics

__all__ = ["metrics"]
