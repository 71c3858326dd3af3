"""
Aggregator Module - Run-over-run quality trends.
================================================

Compares eval runs over time to surface regressions and improvements:
- compare_runs: per-metric deltas between two metric sets
- compute_trend: trend of the most recent stored run vs. the one before it
- format_trend_report: plain-text table with direction arrows

A metric moves only when its absolute change exceeds REGRESSION_THRESHOLD
on the 0-1 scale; a change of exactly ±0.05 is stable.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from pydantic import ValidationError

from ctx_eval.shared.errors import EvalError
from ctx_eval.shared.logging import get_logger
from ctx_eval.shared.schemas import (
    EvalRun,
    MetricName,
    RetrievalMetrics,
    RunComparisonSummary,
)

logger = get_logger(__name__)

REGRESSION_THRESHOLD = 0.05

# Decimal places kept when comparing a delta against the threshold
DELTA_PRECISION = 9

METRIC_NAMES: tuple[MetricName, ...] = tuple(MetricName)


class MetricDirection(str, Enum):
    """Direction of a metric between two runs."""

    UP = "up"
    DOWN = "down"
    STABLE = "stable"

    @property
    def arrow(self) -> str:
        return {"up": "↑", "down": "↓", "stable": "→"}[self.value]


# ─────────────────────────────────────────────────────────────────────────────
# Result Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class MetricTrend:
    """Trend of one metric between the current and previous run."""

    metric: MetricName
    current: float
    previous: Optional[float] = None
    delta: Optional[float] = None
    direction: MetricDirection = MetricDirection.STABLE
    is_regression: bool = False
    is_improvement: bool = False

    def to_dict(self) -> dict:
        return {
            "metric": self.metric.value,
            "current": self.current,
            "previous": self.previous,
            "delta": self.delta,
            "direction": self.direction.value,
            "is_regression": self.is_regression,
            "is_improvement": self.is_improvement,
        }


@dataclass
class TrendResult:
    """Trend analysis across a project's stored runs."""

    project_id: str
    run_count: int
    current_run_id: str
    previous_run_id: Optional[str]
    trends: list[MetricTrend] = field(default_factory=list)
    has_regressions: bool = False
    has_improvements: bool = False

    @property
    def regressions(self) -> list[MetricTrend]:
        return [t for t in self.trends if t.is_regression]

    @property
    def improvements(self) -> list[MetricTrend]:
        return [t for t in self.trends if t.is_improvement]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "project_id": self.project_id,
            "run_count": self.run_count,
            "current_run_id": self.current_run_id,
            "previous_run_id": self.previous_run_id,
            "trends": [t.to_dict() for t in self.trends],
            "has_regressions": self.has_regressions,
            "has_improvements": self.has_improvements,
        }


@dataclass
class MetricComparison:
    """Comparison of one metric between two metric sets."""

    current: float
    previous: float
    delta: float
    direction: MetricDirection
    is_regression: bool
    is_improvement: bool


@dataclass
class ComparisonCounts:
    regression_count: int = 0
    improvement_count: int = 0
    stable_count: int = 0


@dataclass
class RunComparison:
    """Metric-by-metric comparison of two runs."""

    metrics: dict[MetricName, MetricComparison]
    summary: ComparisonCounts


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────


def classify_delta(delta: float) -> tuple[MetricDirection, bool, bool]:
    """
    Classify a metric delta.

    Uses strict inequality so exactly ±REGRESSION_THRESHOLD is stable.
    The delta is rounded first so float noise (0.80 - 0.75 is
    0.05000000000000004) does not push a boundary change over.

    Returns:
        (direction, is_regression, is_improvement)
    """
    delta = round(delta, DELTA_PRECISION)
    if delta > REGRESSION_THRESHOLD:
        return MetricDirection.UP, False, True
    if delta < -REGRESSION_THRESHOLD:
        return MetricDirection.DOWN, True, False
    return MetricDirection.STABLE, False, False


def compare_runs(current: RetrievalMetrics, previous: RetrievalMetrics) -> RunComparison:
    """
    Compare two sets of retrieval metrics.

    Args:
        current: Metrics from the more recent run
        previous: Metrics from the earlier run

    Returns:
        Per-metric comparison with summary counts
    """
    metrics: dict[MetricName, MetricComparison] = {}
    counts = ComparisonCounts()

    for name in METRIC_NAMES:
        cur = current.get(name)
        prev = previous.get(name)
        delta = cur - prev
        direction, is_regression, is_improvement = classify_delta(delta)

        if is_regression:
            counts.regression_count += 1
        elif is_improvement:
            counts.improvement_count += 1
        else:
            counts.stable_count += 1

        metrics[name] = MetricComparison(
            current=cur,
            previous=prev,
            delta=delta,
            direction=direction,
            is_regression=is_regression,
            is_improvement=is_improvement,
        )

    return RunComparison(metrics=metrics, summary=counts)


# ─────────────────────────────────────────────────────────────────────────────
# Trend Computation
# ─────────────────────────────────────────────────────────────────────────────


def parse_run_metrics(run: EvalRun) -> RetrievalMetrics:
    """
    Decode the metrics stored on a run.

    Raises:
        ValidationError: If the JSON is malformed or fails the metric schema
    """
    return RetrievalMetrics.model_validate_json(run.metrics)


def compute_trend(runs: Sequence[EvalRun]) -> TrendResult:
    """
    Compute the trend of the most recent run against the previous one.

    Args:
        runs: Eval runs ordered most recent first

    Returns:
        TrendResult with one MetricTrend per metric

    Raises:
        EvalError: EVAL_RUN_FAILED if runs is empty or the current run's
            metrics cannot be decoded

    A previous run with corrupt metrics is treated as absent so the current
    metrics can still be reported.
    """
    if not runs:
        raise EvalError.eval_run_failed("cannot compute trend: no eval runs provided")

    current_run = runs[0]
    previous_run = runs[1] if len(runs) > 1 else None

    try:
        current_metrics = parse_run_metrics(current_run)
    except ValidationError as e:
        raise EvalError.eval_run_failed(
            f"cannot compute trend: current run {current_run.id} has corrupted metrics JSON",
            cause=e,
        ) from e

    previous_metrics: Optional[RetrievalMetrics] = None
    if previous_run is not None:
        try:
            previous_metrics = parse_run_metrics(previous_run)
        except ValidationError as e:
            logger.warning(
                f"Previous run {previous_run.id} has corrupted metrics, "
                f"reporting current run only: {e.error_count()} error(s)"
            )

    trends: list[MetricTrend] = []
    for name in METRIC_NAMES:
        current = current_metrics.get(name)
        if previous_metrics is None:
            trends.append(MetricTrend(metric=name, current=current))
            continue

        previous = previous_metrics.get(name)
        delta = current - previous
        direction, is_regression, is_improvement = classify_delta(delta)
        trends.append(
            MetricTrend(
                metric=name,
                current=current,
                previous=previous,
                delta=delta,
                direction=direction,
                is_regression=is_regression,
                is_improvement=is_improvement,
            )
        )

    # A corrupt previous run is reported as "no previous run"
    previous_run_id = previous_run.id if previous_metrics is not None else None

    return TrendResult(
        project_id=current_run.project_id,
        run_count=len(runs),
        current_run_id=current_run.id,
        previous_run_id=previous_run_id,
        trends=trends,
        has_regressions=any(t.is_regression for t in trends),
        has_improvements=any(t.is_improvement for t in trends),
    )


def build_comparison(
    current_run_id: str,
    current_metrics: RetrievalMetrics,
    runs: Sequence[EvalRun],
) -> Optional[RunComparisonSummary]:
    """
    Build the metric deltas for a run summary.

    Args:
        current_run_id: ID of the run just completed (skipped in `runs`)
        current_metrics: Its aggregate metrics
        runs: Recent runs, most recent first

    Returns:
        Deltas against the newest other run, or None when there is none
        or its metrics are unreadable
    """
    previous_run = next((r for r in runs if r.id != current_run_id), None)
    if previous_run is None:
        return None

    try:
        previous_metrics = parse_run_metrics(previous_run)
    except ValidationError:
        logger.warning(f"Skipping comparison: run {previous_run.id} has corrupted metrics")
        return None

    return RunComparisonSummary(
        previous_run_id=previous_run.id,
        metric_changes={
            name.value: current_metrics.get(name) - previous_metrics.get(name)
            for name in METRIC_NAMES
        },
    )


# ─────────────────────────────────────────────────────────────────────────────
# Reporting
# ─────────────────────────────────────────────────────────────────────────────


def format_trend_report(trend: TrendResult) -> str:
    """
    Format a trend as a plain-text report.

    Shows a comparison table (or current values only for a first eval),
    followed by regressions and improvements.
    """
    lines = [
        "Eval Trend Report",
        "=================",
        f"Runs analyzed: {trend.run_count}",
        f"Current run:  {trend.current_run_id}",
    ]
    if trend.previous_run_id:
        lines.append(f"Previous run: {trend.previous_run_id}")
    else:
        lines.append("Previous run: (none - first eval)")
    lines.append("")

    if trend.previous_run_id:
        lines.append("Metric         Current  Previous  Change  Trend")
        lines.append("─────────────  ───────  ────────  ──────  ─────")
        for t in trend.trends:
            label = t.metric.label.ljust(13)
            cur = f"{t.current:.3f}".rjust(7)
            prev = f"{t.previous:.3f}".rjust(8) if t.previous is not None else "-".rjust(8)
            delta = f"{t.delta:+.3f}".rjust(6) if t.delta is not None else "-".rjust(6)
            lines.append(f"{label}  {cur}  {prev}  {delta}  {t.direction.arrow}")
    else:
        lines.append("Metric         Value")
        lines.append("─────────────  ───────")
        for t in trend.trends:
            value = f"{t.current:.3f}".rjust(7)
            lines.append(f"{t.metric.label.ljust(13)}  {value}")

    lines.append("")

    regressions = trend.regressions
    if regressions:
        lines.append(f"Regressions ({len(regressions)}):")
        for t in regressions:
            lines.append(
                f"  {t.metric.label} dropped by {abs(t.delta or 0.0):.3f} "
                f"({t.previous:.3f} -> {t.current:.3f})"
            )
        lines.append("")

    improvements = trend.improvements
    if improvements:
        lines.append(f"Improvements ({len(improvements)}):")
        for t in improvements:
            lines.append(
                f"  {t.metric.label} improved by {t.delta or 0.0:.3f} "
                f"({t.previous:.3f} -> {t.current:.3f})"
            )
        lines.append("")

    if trend.previous_run_id and not trend.has_regressions and not trend.has_improvements:
        lines.append(f"All metrics stable (no changes exceeding {REGRESSION_THRESHOLD:.0%})")
        lines.append("")

    return "\n".join(lines)
