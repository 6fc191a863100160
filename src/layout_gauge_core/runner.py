"""
layout-gauge-core CLI Runner

Scores recorded layout detections against a validation dataset, aggregates
the KPIs per prompt version, and optionally runs a prompt optimization pass.

Usage:
    python -m layout_gauge_core.runner --dataset datasets/sample_layout_dataset.json \\
        --predictions predictions.json --prompt-version v1.0

Optimize the prompt with the scored runs as feedback:
    python -m layout_gauge_core.runner --dataset datasets/sample_layout_dataset.json \\
        --predictions predictions.json --optimize --target-metric recall
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from layout_gauge_core.dataset_loader import DatasetNotFoundError, load_dataset
from layout_gauge_core.domain.constants import TARGET_METRICS
from layout_gauge_core.domain.entities import PromptOptimizationRequest
from layout_gauge_core.gauge_config import MatchingConfig, load_config
from layout_gauge_core.infrastructure.model_clients import create_client
from layout_gauge_core.prompt_store import PromptStore
from layout_gauge_core.use_cases.execution import (
    ExecutionHistory,
    aggregate_executions,
    execution_to_record,
    record_test_execution,
)
from layout_gauge_core.use_cases.optimization import OptimizationTracker
from layout_gauge_core.use_cases.prompt_improvement import PromptImprover


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="layout-gauge-core: Score layout detections and track prompt optimization",
    )
    parser.add_argument(
        "--dataset",
        required=True,
        help="Path to the validation dataset JSON file",
    )
    parser.add_argument(
        "--predictions",
        required=True,
        help="Path to the predictions JSON file (case_id -> detected sections)",
    )
    parser.add_argument(
        "--prompt-version",
        default="v1.0",
        help="Version label of the prompt that produced the predictions (default: v1.0)",
    )
    parser.add_argument(
        "--prompt-file",
        default=None,
        help="Text file with the prompt that produced the predictions",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        help="Directory for output CSV files (default: results)",
    )
    parser.add_argument(
        "--match-threshold",
        type=float,
        default=None,
        help="Minimum IoU for a prediction to match a ground-truth section (default: GAUGE_MATCH_THRESHOLD)",
    )
    parser.add_argument(
        "--match-by-type",
        action="store_true",
        help="Only match sections of the same type",
    )
    parser.add_argument(
        "--optimize",
        action="store_true",
        help="Run a prompt optimization pass over the scored runs",
    )
    parser.add_argument(
        "--improve",
        action="store_true",
        help="Ask the OpenAI model for a prompt variant (requires --optimize and --prompt-file)",
    )
    parser.add_argument(
        "--target-metric",
        default="validation_score",
        choices=TARGET_METRICS,
        help="Metric to optimize (default: validation_score)",
    )
    parser.add_argument(
        "--improvement-threshold",
        type=float,
        default=10.0,
        help="Minimum expected improvement (%%) for a successful optimization (default: 10)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable INFO logging",
    )
    return parser.parse_args(argv)


def load_predictions(path: str | Path) -> dict[str, dict]:
    """
    Load recorded detector output

    Accepts {"case_id": [sections]} or
    {"case_id": {"sections": [...], "processing_time_ms": ..., "input_tokens": ...,
    "output_tokens": ..., "error": ..., "user_rating": ...}}, optionally wrapped
    as {"model_name": ..., "predictions": {...}}. Null entries are treated as missing.

    Returns:
        dict: case_id -> normalized prediction entry (model_name under "_model_name")
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    model_name = None
    if isinstance(data, dict) and "predictions" in data:
        model_name = data.get("model_name")
        data = data["predictions"]
    if not isinstance(data, dict):
        raise ValueError(f"Predictions file must map case ids to sections: {path}")

    entries: dict[str, dict] = {}
    for case_id, entry in data.items():
        if entry is None:
            continue
        if isinstance(entry, list):
            entry = {"sections": entry}
        entries[str(case_id)] = {**entry, "_model_name": entry.get("model_name", model_name)}
    return entries


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load config
    config = load_config()
    matching = MatchingConfig(
        match_threshold=(
            args.match_threshold if args.match_threshold is not None else config.matching.match_threshold
        ),
        match_by_type=args.match_by_type or config.matching.match_by_type,
    )

    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    raw_path = output_dir / f"raw_metrics_{run_id}.csv"
    summary_path = output_dir / f"summary_{run_id}.csv"

    # Load dataset and predictions
    print(f"\n=== Loading dataset: {args.dataset} ===\n")
    try:
        dataset = load_dataset(args.dataset)
    except DatasetNotFoundError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    predictions = load_predictions(args.predictions)
    print(f"  Dataset: {dataset.name} ({dataset.version})")
    print(f"  Task: {dataset.task_id}")
    print(f"  Cases: {len(dataset.test_cases)}")
    print(f"  Predictions: {len(predictions)}")
    print(f"  Match threshold: {matching.match_threshold}")
    print(f"  Match by type: {matching.match_by_type}")
    print(f"  Run ID: {run_id}")
    print()

    prompt_text = ""
    if args.prompt_file:
        prompt_text = Path(args.prompt_file).read_text(encoding="utf-8")
    store = PromptStore()
    prompt = store.register_prompt(dataset.task_id, args.prompt_version, prompt_text, is_active=True)

    # Step 1: Score predictions
    history = ExecutionHistory()
    total = len(dataset.test_cases)
    print(f"=== Scoring Predictions ({total} cases) ===\n")
    for i, case in enumerate(dataset.test_cases, start=1):
        entry = predictions.get(case.case_id)
        if entry is None:
            entry = {"sections": [], "error": "No prediction for case", "_model_name": None}
        execution = record_test_execution(
            prompt,
            case,
            entry.get("sections"),
            entry.get("processing_time_ms", 0),
            model_name=entry.get("_model_name"),
            input_tokens=int(entry.get("input_tokens") or 0),
            output_tokens=int(entry.get("output_tokens") or 0),
            estimated_cost_usd=entry.get("estimated_cost_usd"),
            error=entry.get("error"),
            user_rating=entry.get("user_rating"),
            matching=matching,
        )
        history.append(execution)
        # Cases without ground truth carry no quality signal
        if execution.error:
            store.record_performance(prompt.prompt_id, 0.0)
        elif "f1" in execution.metrics:
            store.record_performance(prompt.prompt_id, execution.metrics["f1"])

        m = execution.metrics
        if execution.error:
            print(f"[{i}/{total}] {case.case_id} | ERROR: {execution.error}")
        elif "f1" in m:
            print(
                f"[{i}/{total}] {case.case_id} | sections={m['sections_detected']} "
                f"| P={m['precision']:.3f} R={m['recall']:.3f} F1={m['f1']:.3f} IoU={m['avg_iou']:.3f}"
            )
        else:
            print(f"[{i}/{total}] {case.case_id} | sections={m['sections_detected']} | no ground truth")

    # Step 2: Aggregate
    executions = history.list_executions()
    summary_df = aggregate_executions(executions)
    feedback = history.feedback_summary()

    print("\n=== KPI Summary ===\n")
    print(f"  {'Prompt':<12} {'Runs':>5} {'Errors':>7} {'Precision':>10} {'Recall':>8} {'F1':>8} {'IoU':>8}")
    print(f"  {'-'*12} {'-'*5} {'-'*7} {'-'*10} {'-'*8} {'-'*8} {'-'*8}")
    for _, row in summary_df.iterrows():
        print(
            f"  {row['prompt_version']:<12} "
            f"{row['runs']:>5} "
            f"{row['errors']:>7} "
            f"{row['precision']:>10.3f} "
            f"{row['recall']:>8.3f} "
            f"{row['f1']:>8.3f} "
            f"{row['avg_iou']:>8.3f}"
        )
    print()
    print(f"  Validation score: {feedback.average_validation_score:.1f}")
    print(f"  Success rate:     {feedback.success_rate:.1f}%")
    print(f"  Avg time:         {feedback.average_generation_time:.0f}ms")
    print(f"  Prompt score:     {store.get_prompt(prompt.prompt_id).performance_score:.3f}")
    print()

    # Step 3: Optimization
    if args.optimize:
        improver = None
        if args.improve:
            if not prompt_text:
                print("WARNING: --improve requires --prompt-file, skipping prompt synthesis.\n")
            else:
                improver = PromptImprover(create_client(config=config))

        tracker = OptimizationTracker(
            history,
            prompt_store=store,
            prompt_improver=improver,
            config=config.optimization,
        )
        request = PromptOptimizationRequest(
            target_metric=args.target_metric,
            improvement_threshold=args.improvement_threshold,
            analysis_period_days=0,
            task_id=dataset.task_id,
        )
        result = tracker.optimize_prompts(request)
        improvement = result.performance_improvement
        rollout = result.recommended_rollout

        print("=== Prompt Optimization ===\n")
        print(f"  Optimization: {result.optimization_id}")
        print(f"  Success:      {result.success}")
        print(f"  Versions:     {result.original_prompt_version} -> {result.improved_prompt_version}")
        print(
            f"  {improvement.metric}: {improvement.baseline_value:.2f} -> "
            f"{improvement.improved_value:.2f} ({improvement.improvement_percentage:+.1f}%)"
        )
        print(f"  Confidence:   {result.confidence_score:.1f}")
        print(
            f"  Rollout:      {rollout.strategy_type} "
            f"({rollout.rollout_percentage:.0f}% for {rollout.duration_days} days)"
        )
        for pattern in result.analysis_summary.identified_patterns:
            print(f"  Pattern:      {pattern}")
        for risk in result.analysis_summary.risk_factors:
            print(f"  Risk:         {risk}")
        print()

        insights = tracker.generate_learning_insights()
        if insights:
            print("=== Learning Insights ===\n")
            for insight in insights:
                print(f"  [{insight.priority}] {insight.title}: {insight.description}")
            print()

        benchmarks = tracker.get_optimization_benchmarks()
        print("=== Optimization Benchmarks ===\n")
        print(f"  Total:      {benchmarks['total_optimizations']}")
        print(f"  Successful: {benchmarks['successful_optimizations']}")
        print(f"  Avg gain:   {benchmarks['average_improvement']:.1f}%")
        print()

    # Step 4: Save CSV
    pd.DataFrame([execution_to_record(e) for e in executions]).to_csv(raw_path, index=False)
    summary_df.to_csv(summary_path, index=False)

    print("=== Output ===\n")
    print(f"  Raw metrics: {raw_path}")
    print(f"  Summary:     {summary_path}")
    print()


if __name__ == "__main__":
    main()
