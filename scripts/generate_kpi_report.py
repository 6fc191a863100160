"""Generate an HTML KPI report from runner output CSVs."""

from __future__ import annotations

import argparse
from pathlib import Path

import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

KPI_COLUMNS = ["precision", "recall", "f1", "avg_iou"]
KPI_COLORS = {
    "precision": "#1a73e8",
    "recall": "#e8710a",
    "f1": "#34a853",
    "avg_iou": "#9334e6",
}
F1_TARGET = 0.8


def generate_kpi_chart(summary: pd.DataFrame, output_path: Path) -> None:
    """Grouped bar chart of mean KPIs per prompt version."""
    versions = summary["prompt_version"].astype(str).tolist()

    fig = go.Figure()
    for kpi in KPI_COLUMNS:
        if kpi not in summary.columns:
            continue
        fig.add_trace(go.Bar(
            x=versions,
            y=summary[kpi],
            name=kpi,
            marker_color=KPI_COLORS[kpi],
        ))

    fig.add_hline(
        y=F1_TARGET,
        line_dash="dash",
        line_color="#5f6368",
        line_width=1,
        annotation_text="80% target",
        annotation_position="top left",
        annotation_font=dict(size=12, color="#5f6368"),
    )
    fig.update_layout(
        title=dict(text="Detection KPIs by Prompt Version", font=dict(size=18)),
        barmode="group",
        xaxis_title="Prompt version",
        yaxis_title="Score",
        yaxis_range=[0, 1.05],
        legend_title="KPI",
        template="plotly_white",
        height=480,
        width=900,
        margin=dict(l=60, r=30, t=60, b=60),
        font=dict(size=13),
    )

    fig.write_html(str(output_path))
    print(f"  Generated: {output_path}")


def generate_case_breakdown(raw: pd.DataFrame, output_path: Path) -> None:
    """Per-case F1 and processing time, one row per chart."""
    scored = raw[raw["f1"].notna()] if "f1" in raw.columns else raw.iloc[0:0]

    fig = make_subplots(
        rows=2, cols=1,
        subplot_titles=["F1 per case", "Processing time per case (ms)"],
        vertical_spacing=0.15,
    )
    for version in raw["prompt_version"].astype(str).unique():
        version_scored = scored[scored["prompt_version"].astype(str) == version]
        version_raw = raw[raw["prompt_version"].astype(str) == version]
        fig.add_trace(go.Bar(
            x=version_scored["case_id"],
            y=version_scored["f1"],
            name=version,
            legendgroup=version,
        ), row=1, col=1)
        fig.add_trace(go.Bar(
            x=version_raw["case_id"],
            y=version_raw["processing_time_ms"],
            name=version,
            legendgroup=version,
            showlegend=False,
        ), row=2, col=1)

    fig.update_yaxes(range=[0, 1.05], row=1, col=1)
    fig.update_layout(
        title=dict(text="Per-Case Breakdown", font=dict(size=18)),
        template="plotly_white",
        height=700,
        width=1100,
        margin=dict(l=50, r=30, t=80, b=50),
        font=dict(size=12),
    )

    fig.write_html(str(output_path))
    print(f"  Generated: {output_path}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate an HTML KPI report from runner output")
    parser.add_argument("--summary", required=True, help="summary_<run_id>.csv written by the runner")
    parser.add_argument("--raw", default=None, help="raw_metrics_<run_id>.csv written by the runner")
    parser.add_argument("--output-dir", default="docs/reports", help="Directory for the HTML files")
    args = parser.parse_args()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print("Generating KPI report...")
    generate_kpi_chart(pd.read_csv(args.summary), output_dir / "kpis-by-prompt-version.html")
    if args.raw:
        generate_case_breakdown(pd.read_csv(args.raw), output_dir / "per-case-breakdown.html")
    print("Done!")


if __name__ == "__main__":
    main()
