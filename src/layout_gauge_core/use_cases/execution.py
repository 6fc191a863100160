"""
Test Execution

Records single test executions (predicted sections scored against ground
truth), runs a prompt version over a validation dataset, and aggregates the
execution history into feedback for the optimization tracker.
"""

import logging
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Iterable

import pandas as pd

from layout_gauge_core.dataset_loader import ValidationCase, ValidationDataset
from layout_gauge_core.domain.entities import AIPrompt, FeedbackSummary, TestExecution
from layout_gauge_core.domain.value_objects import DetectedSection
from layout_gauge_core.gauge_config import MatchingConfig
from layout_gauge_core.metrics.cost import estimate_cost_usd
from layout_gauge_core.metrics.detection import (
    compute_base_metrics,
    compute_validation_kpis,
    merge,
)

logger = logging.getLogger(__name__)

KPI_COLUMNS = ["precision", "recall", "f1", "avg_iou"]


def _section_dict(section) -> dict:
    if isinstance(section, DetectedSection):
        return section.to_dict()
    return dict(section)


def record_test_execution(
    prompt: AIPrompt,
    case: ValidationCase,
    predictions: Iterable | None,
    processing_time_ms: float,
    *,
    model_name: str | None = None,
    input_tokens: int = 0,
    output_tokens: int = 0,
    estimated_cost_usd: float | None = None,
    error: str | None = None,
    user_rating: float | None = None,
    matching: MatchingConfig | None = None,
) -> TestExecution:
    """
    Score one prediction run and build its TestExecution record.

    KPIs are computed only when the case carries ground truth.

    Args:
        prompt: Prompt version used for the run
        case: Validation case the run was made against
        predictions: Predicted sections (DetectedSection or mappings)
        processing_time_ms: Wall time of the run
        model_name: Model used (for cost estimation)
        input_tokens: Prompt tokens consumed
        output_tokens: Completion tokens consumed
        estimated_cost_usd: Known cost; estimated from tokens when omitted
        error: Error message when the run failed
        user_rating: Optional user rating (0-5)
        matching: Matching configuration (defaults to MatchingConfig())

    Returns:
        TestExecution
    """
    if matching is None:
        matching = MatchingConfig()

    predictions = list(predictions or [])
    tokens_used = input_tokens + output_tokens if (input_tokens or output_tokens) else None
    if estimated_cost_usd is None and tokens_used is not None:
        estimated_cost_usd = estimate_cost_usd(model_name, input_tokens, output_tokens)

    base = compute_base_metrics(
        predictions,
        processing_time_ms,
        tokens_used=tokens_used,
        estimated_cost_usd=estimated_cost_usd,
    )
    kpis = None
    if case.ground_truth is not None and error is None:
        kpis = compute_validation_kpis(
            predictions,
            case.ground_truth,
            match_threshold=matching.match_threshold,
            match_by_type=matching.match_by_type,
        )

    return TestExecution(
        execution_id=f"exec_{uuid.uuid4().hex}",
        prompt_id=prompt.prompt_id,
        prompt_version=prompt.version,
        task_id=prompt.task_id,
        case_id=case.case_id,
        input_data=case.input,
        ai_output=[_section_dict(s) for s in predictions],
        ground_truth=(
            [_section_dict(s) for s in case.ground_truth]
            if case.ground_truth is not None
            else None
        ),
        metrics=merge(base, kpis),
        processing_time_ms=base.processing_time_ms,
        tokens_used=tokens_used,
        estimated_cost_usd=estimated_cost_usd,
        error=error,
        user_rating=user_rating,
        timestamp=datetime.now(),
    )


class ExecutionHistory:
    """Append-only, thread-safe store of test executions"""

    def __init__(self, executions: Iterable[TestExecution] | None = None) -> None:
        self._executions: list[TestExecution] = list(executions or [])
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._executions)

    def append(self, execution: TestExecution) -> None:
        with self._lock:
            self._executions.append(execution)

    def list_executions(
        self,
        *,
        prompt_id: str | None = None,
        since: datetime | None = None,
    ) -> list[TestExecution]:
        """Executions in recording order, optionally filtered"""
        with self._lock:
            executions = list(self._executions)
        if prompt_id is not None:
            executions = [e for e in executions if e.prompt_id == prompt_id]
        if since is not None:
            executions = [e for e in executions if e.timestamp >= since]
        return executions

    def feedback_summary(self, period_days: int | None = None) -> FeedbackSummary:
        """Summarize executions of the last period_days (all when None)"""
        since = None
        if period_days is not None and period_days > 0:
            since = datetime.now() - timedelta(days=period_days)
        return summarize_executions(self.list_executions(since=since))


def run_dataset_evaluation(
    prompt: AIPrompt,
    dataset: ValidationDataset,
    detect_fn: Callable[[ValidationCase], Iterable],
    *,
    history: ExecutionHistory | None = None,
    matching: MatchingConfig | None = None,
    model_name: str | None = None,
) -> list[TestExecution]:
    """
    Run a prompt version over every case of a validation dataset.

    A detector failure is recorded as an error execution so one bad case
    never aborts the run.

    Args:
        prompt: Prompt version under evaluation
        dataset: Validation dataset
        detect_fn: External layout detector returning predicted sections for a case
        history: History the executions are appended to (optional)
        matching: Matching configuration
        model_name: Model used by the detector (for cost estimation)

    Returns:
        list[TestExecution]: One execution per case, in dataset order
    """
    if dataset.task_id != prompt.task_id:
        logger.warning(
            "Dataset %s is scoped to task %s but prompt %s belongs to task %s",
            dataset.dataset_id, dataset.task_id, prompt.prompt_id, prompt.task_id,
        )

    executions = []
    total = len(dataset.test_cases)
    for i, case in enumerate(dataset.test_cases, start=1):
        start_time = time.perf_counter()
        try:
            predictions = list(detect_fn(case) or [])
            error = None
        except Exception as e:
            logger.exception("Detection failed for case %s", case.case_id)
            predictions = []
            error = str(e) or type(e).__name__
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        execution = record_test_execution(
            prompt,
            case,
            predictions,
            elapsed_ms,
            model_name=model_name,
            error=error,
            matching=matching,
        )
        executions.append(execution)
        if history is not None:
            history.append(execution)

        logger.info(
            "[%d/%d] %s | %s | f1=%s",
            i, total, prompt.version, case.case_id,
            f"{execution.metrics['f1']:.3f}" if "f1" in execution.metrics else "n/a",
        )

    return executions


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def summarize_executions(executions: Iterable[TestExecution]) -> FeedbackSummary:
    """
    Aggregate executions into the feedback consumed by the optimization tracker.

    The validation score is the mean F1 of scored executions on a 0-100 scale.

    Args:
        executions: Test executions

    Returns:
        FeedbackSummary (zeros when there are no executions)
    """
    executions = list(executions)
    total = len(executions)
    if total == 0:
        return FeedbackSummary()

    errors = sum(1 for e in executions if e.error)
    scored = [e.metrics for e in executions if "f1" in e.metrics]
    ratings = [e.user_rating for e in executions if e.user_rating is not None]

    f1_mean = _mean([m["f1"] for m in scored])
    return FeedbackSummary(
        average_validation_score=f1_mean * 100 if f1_mean is not None else 0.0,
        average_generation_time=_mean([e.processing_time_ms for e in executions]),
        success_rate=(total - errors) / total * 100,
        total_modules_generated=total,
        total_errors=errors,
        average_rating=_mean(ratings),
        average_precision=_mean([m["precision"] for m in scored]),
        average_recall=_mean([m["recall"] for m in scored]),
        average_iou=_mean([m["avg_iou"] for m in scored]),
    )


def execution_to_record(execution: TestExecution) -> dict:
    """Flatten an execution into a CSV row"""
    record = {
        "execution_id": execution.execution_id,
        "prompt_id": execution.prompt_id,
        "prompt_version": execution.prompt_version,
        "task_id": execution.task_id,
        "case_id": execution.case_id,
        "timestamp": execution.timestamp.isoformat(),
        "error": execution.error,
        "user_rating": execution.user_rating,
    }
    record.update(execution.metrics)
    return record


def aggregate_executions(executions: Iterable[TestExecution]) -> pd.DataFrame:
    """
    Aggregate executions per prompt version.

    Args:
        executions: Test executions

    Returns:
        DataFrame with one row per (task_id, prompt_id, prompt_version):
        runs, errors, mean KPIs, mean confidence, mean processing time, total cost
    """
    rows = [execution_to_record(e) for e in executions]
    columns = [
        "task_id", "prompt_id", "prompt_version", "runs", "errors",
        *KPI_COLUMNS, "average_confidence", "processing_time_ms", "estimated_cost_usd",
    ]
    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows)
    for col in [*KPI_COLUMNS, "average_confidence", "processing_time_ms", "estimated_cost_usd"]:
        if col not in df.columns:
            df[col] = float("nan")
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["failed"] = df["error"].notna()

    keys = ["task_id", "prompt_id", "prompt_version"]
    summary = df.groupby(keys, sort=False).agg(
        runs=("case_id", "count"),
        errors=("failed", "sum"),
        precision=("precision", "mean"),
        recall=("recall", "mean"),
        f1=("f1", "mean"),
        avg_iou=("avg_iou", "mean"),
        average_confidence=("average_confidence", "mean"),
        processing_time_ms=("processing_time_ms", "mean"),
        estimated_cost_usd=("estimated_cost_usd", "sum"),
    ).reset_index()
    summary["errors"] = summary["errors"].astype(int)
    return summary[columns]
