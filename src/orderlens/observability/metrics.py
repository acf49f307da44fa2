"""
Defines Prometheus metrics for the detection pipeline.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# The module may be imported (or reloaded) several times in one process, for
# example by the test suite; re-registering a collector name raises.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[no-untyped-def]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing

        try:
            return metric_cls(name, documentation, *args, **kwargs)
        except ValueError:
            # Registration lost the race, reuse the collector that won.
            return _PROM_REGISTRY._names_to_collectors[name]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)
Histogram = _duplicate_safe_factory(_OrigHistogram)


def _create_metrics() -> Dict[str, Any]:
    return {
        "pages_classified": Counter(
            "orderlens_pages_classified_total",
            "Page classifications by outcome",
            ["outcome"],
        ),
        "llm_requests": Counter(
            "orderlens_llm_requests_total",
            "Requests made to the model endpoint by provider and status",
            ["provider", "status"],
        ),
        "llm_latency_seconds": Histogram(
            "orderlens_llm_latency_seconds",
            "Round-trip time of model endpoint calls",
            buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
        ),
        "dom_strategy_hits": Counter(
            "orderlens_dom_strategy_hits_total",
            "DOM fallback strategies that produced the final product list",
            ["strategy"],
        ),
        "pipeline_runs": Counter(
            "orderlens_pipeline_runs_total",
            "Detection pipeline runs by terminal state",
            ["result"],
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()
