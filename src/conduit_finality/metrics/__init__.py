"""Metrics — Prometheus metrics collection."""

from __future__ import annotations

from conduit_finality.metrics.collector import FinalityMetrics, MetricsCollector

__all__ = ["FinalityMetrics", "MetricsCollector"]
