"""
Detection Quality Metrics

Computes per-run base metrics (section count, confidence, timing, cost) and
detection KPIs (precision / recall / F1 / average IoU) by matching predicted
section boxes against ground truth.

Every function here is total: malformed geometry, missing fields and empty
collections yield 0, None or empty aggregates instead of exceptions, so that
quality computation never aborts a pipeline run.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import fields, is_dataclass

from layout_gauge_core.domain.constants import DEFAULT_MATCH_THRESHOLD
from layout_gauge_core.domain.value_objects import BaseMetrics, BoundingBox, DetectionKpis

logger = logging.getLogger(__name__)


def _get(obj, name: str):
    """Read a field from a mapping or an attribute from an object"""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _as_box(value) -> BoundingBox | None:
    """Coerce a BoundingBox, mapping or box-like object. None if it is not a usable box."""
    if value is None:
        return None
    if isinstance(value, BoundingBox):
        box = value
    elif isinstance(value, Mapping):
        return BoundingBox.from_dict(value)
    else:
        return BoundingBox.from_dict({
            key: getattr(value, key, None) for key in ("x", "y", "width", "height")
        })
    if not all(math.isfinite(v) for v in (box.x, box.y, box.width, box.height)):
        return None
    return box


def _section_bounds(section):
    """Bounds of a section, or the section itself when it is box-shaped"""
    bounds = _get(section, "bounds")
    return bounds if bounds else section


def compute_average_confidence(sections: Iterable | None) -> float | None:
    """
    Mean confidence over sections that carry a numeric confidence

    Missing, non-numeric and NaN confidences are treated as "no information"
    rather than zero.

    Args:
        sections: Sections (mappings or objects); None is treated as empty

    Returns:
        Arithmetic mean, or None when no section has a usable confidence
    """
    values = []
    for section in sections or []:
        raw = _get(section, "confidence")
        if raw is None or isinstance(raw, bool):
            continue
        try:
            value = float(raw)
        except (TypeError, ValueError, OverflowError):
            continue
        if math.isnan(value):
            continue
        values.append(value)

    if not values:
        return None
    return sum(values) / len(values)


def compute_base_metrics(
    sections: Iterable | None,
    processing_time_ms: float | None,
    tokens_used: int | None = None,
    estimated_cost_usd: float | None = None,
    average_confidence_override: float | None = None,
) -> BaseMetrics:
    """
    Compute run metrics that do not depend on ground truth

    Args:
        sections: Predicted sections; None is treated as empty
        processing_time_ms: Wall time of the run. Floored and clamped to >= 0
        tokens_used: Passed through unchanged
        estimated_cost_usd: Passed through unchanged
        average_confidence_override: Pre-aggregated confidence that takes
            precedence over the computed mean

    Returns:
        BaseMetrics
    """
    sections = list(sections or [])

    if average_confidence_override is not None:
        average_confidence = average_confidence_override
    else:
        average_confidence = compute_average_confidence(sections)

    try:
        elapsed = float(processing_time_ms or 0)
    except (TypeError, ValueError, OverflowError):
        elapsed = 0.0
    if not math.isfinite(elapsed):
        elapsed = 0.0

    return BaseMetrics(
        sections_detected=len(sections),
        average_confidence=average_confidence,
        processing_time_ms=max(0, math.floor(elapsed)),
        tokens_used=tokens_used,
        estimated_cost_usd=estimated_cost_usd,
    )


def iou(a, b) -> float:
    """
    Axis-aligned intersection over union of two boxes

    Intersection sides are clamped to >= 0, so disjoint boxes have zero
    intersection. Each box area is clamped to >= 0, so degenerate boxes
    contribute nothing to the union.

    Args:
        a: BoundingBox, mapping with x/y/width/height, or None
        b: BoundingBox, mapping with x/y/width/height, or None

    Returns:
        IoU in [0, 1]. 0 when either box is missing or the union is empty
    """
    box_a = _as_box(a)
    box_b = _as_box(b)
    if box_a is None or box_b is None:
        return 0.0

    ix1 = max(box_a.x, box_b.x)
    iy1 = max(box_a.y, box_b.y)
    ix2 = min(box_a.x + box_a.width, box_b.x + box_b.width)
    iy2 = min(box_a.y + box_a.height, box_b.y + box_b.height)

    intersection = max(0.0, ix2 - ix1) * max(0.0, iy2 - iy1)
    union = box_a.area + box_b.area - intersection
    if union <= 0:
        return 0.0
    return min(1.0, intersection / union)


def compute_validation_kpis(
    predictions: Iterable | None,
    ground_truth: Iterable | None,
    match_threshold: float | None = None,
    match_by_type: bool = False,
) -> DetectionKpis:
    """
    Match predictions to ground truth and compute detection KPIs

    Greedy one-pass matching: predictions are visited in input order and each
    takes the unmatched ground-truth entry with the strictly greatest IoU
    (first seen wins ties). A pair counts as a true positive when that IoU is
    at least ``match_threshold``; the ground-truth entry is then consumed.
    This is not an optimal assignment, but it is deterministic and O(n*m).

    Args:
        predictions: Predicted sections; None is treated as empty
        ground_truth: Reference sections; None is treated as empty
        match_threshold: Minimum IoU for a match (default 0.5)
        match_by_type: Skip candidates whose type differs from the prediction's
            (only when both carry a type)

    Returns:
        DetectionKpis. avg_iou is the mean, over matched ground-truth entries,
        of the best IoU against any prediction.
    """
    preds = list(predictions or [])
    gts = list(ground_truth or [])
    threshold = DEFAULT_MATCH_THRESHOLD
    if isinstance(match_threshold, (int, float)) and not isinstance(match_threshold, bool):
        try:
            threshold = float(match_threshold)
        except OverflowError:
            logger.warning("Match threshold out of range, using %s", DEFAULT_MATCH_THRESHOLD)

    matched: list[int] = []
    consumed: set[int] = set()
    for pred in preds:
        pred_type = _get(pred, "type")
        pred_bounds = _section_bounds(pred)
        best = -1
        best_iou = 0.0
        for i, gt in enumerate(gts):
            if i in consumed:
                continue
            gt_type = _get(gt, "type")
            if match_by_type and pred_type and gt_type and pred_type != gt_type:
                continue
            score = iou(pred_bounds, _section_bounds(gt))
            if score > best_iou:
                best_iou = score
                best = i
        if best >= 0 and best_iou >= threshold:
            consumed.add(best)
            matched.append(best)

    tp = len(matched)
    fp = max(0, len(preds) - tp)
    fn = max(0, len(gts) - tp)
    precision = tp / (tp + fp) if preds else 0.0
    recall = tp / (tp + fn) if gts else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    best_ious = [
        max((iou(_section_bounds(pred), _section_bounds(gts[gi])) for pred in preds), default=0.0)
        for gi in matched
    ]
    avg_iou = sum(best_ious) / len(best_ious) if best_ious else 0.0

    logger.debug(
        "Matched %d/%d predictions against %d ground-truth sections (threshold=%.2f, by_type=%s)",
        tp, len(preds), len(gts), threshold, match_by_type,
    )

    return DetectionKpis(
        precision=precision,
        recall=recall,
        f1=f1,
        avg_iou=avg_iou,
        tp=tp,
        fp=fp,
        fn=fn,
    )


def merge(*parts) -> dict:
    """
    Shallow right-biased merge of metric records

    Later parts override earlier keys. Dataclass instances and mappings are
    accepted; None (and anything else) is skipped.

    Returns:
        dict containing the union of all fields
    """
    out: dict = {}
    for part in parts:
        if part is None:
            continue
        if is_dataclass(part) and not isinstance(part, type):
            out.update({f.name: getattr(part, f.name) for f in fields(part)})
        elif isinstance(part, Mapping):
            out.update(part)
    return out
