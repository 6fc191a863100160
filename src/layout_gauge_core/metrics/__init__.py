"""
Metrics sub-package

Provides the detection quality metrics engine and cost estimation.
"""

from layout_gauge_core.domain.value_objects import BaseMetrics, DetectionKpis
from layout_gauge_core.metrics.cost import estimate_cost_usd
from layout_gauge_core.metrics.detection import (
    compute_average_confidence,
    compute_base_metrics,
    compute_validation_kpis,
    iou,
    merge,
)

__all__ = [
    # value objects (re-exported from domain)
    "BaseMetrics",
    "DetectionKpis",
    # detection
    "compute_average_confidence",
    "compute_base_metrics",
    "compute_validation_kpis",
    "iou",
    "merge",
    # cost
    "estimate_cost_usd",
]
