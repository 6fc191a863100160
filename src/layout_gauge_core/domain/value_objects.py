"""
Domain Value Objects

Defines immutable data structures representing values such as bounding boxes,
detected sections, run metrics, and model responses.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, asdict


def _to_float(value) -> float | None:
    """float() that returns None instead of raising"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in pixel (or normalized) coordinates"""
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        """Area with negative sizes clamped to zero"""
        return max(0.0, self.width) * max(0.0, self.height)

    @classmethod
    def from_dict(cls, data) -> "BoundingBox | None":
        """Create from a mapping. Returns None when a coordinate is missing or not a finite number."""
        if not isinstance(data, Mapping):
            return None
        values = [_to_float(data.get(key)) for key in ("x", "y", "width", "height")]
        if any(v is None or not math.isfinite(v) for v in values):
            return None
        return cls(*values)


@dataclass(frozen=True)
class DetectedSection:
    """A layout section predicted by the AI pipeline or taken from ground truth"""
    section_type: str | None = None
    bounds: BoundingBox | None = None
    confidence: float | None = None

    @property
    def type(self) -> str | None:
        return self.section_type

    @classmethod
    def from_dict(cls, data: Mapping) -> "DetectedSection":
        """Create from a JSON mapping ({type?, bounds?, confidence?})"""
        section_type = data.get("type")
        return cls(
            section_type=str(section_type) if section_type is not None else None,
            bounds=BoundingBox.from_dict(data.get("bounds")),
            confidence=_to_float(data.get("confidence")),
        )

    def to_dict(self) -> dict:
        out: dict = {}
        if self.section_type is not None:
            out["type"] = self.section_type
        if self.bounds is not None:
            out["bounds"] = asdict(self.bounds)
        if self.confidence is not None:
            out["confidence"] = self.confidence
        return out


@dataclass(frozen=True)
class BaseMetrics:
    """Per-run metrics that do not need ground truth"""
    sections_detected: int
    average_confidence: float | None
    processing_time_ms: int
    tokens_used: int | None = None
    estimated_cost_usd: float | None = None


@dataclass(frozen=True)
class DetectionKpis:
    """Detection quality against ground truth"""
    precision: float
    recall: float
    f1: float
    avg_iou: float
    tp: int
    fp: int
    fn: int


@dataclass
class ModelResponse:
    """Model response"""
    output: str
    latency_ms: int
    model_name: str
    input_tokens: int = 0
    output_tokens: int = 0
