"""
Thresholds Module - Pass/fail gate for retrieval quality.
=========================================================

Checks aggregate metrics against the configured bars (eval.thresholds).
A metric passes when its value is at least the threshold.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from ctx_eval.shared.config import ThresholdsConfig, get_settings
from ctx_eval.shared.schemas import MetricName, RetrievalMetrics

GATED_METRICS: tuple[MetricName, ...] = (
    MetricName.MRR,
    MetricName.PRECISION_AT_K,
    MetricName.HIT_RATE,
)


@dataclass
class ThresholdCheck:
    """Outcome of one metric against its threshold."""

    metric: MetricName
    label: str
    value: float
    threshold: float
    passed: bool

    def to_dict(self) -> dict:
        return {
            "metric": self.metric.value,
            "label": self.label,
            "value": self.value,
            "threshold": self.threshold,
            "passed": self.passed,
        }


def check_thresholds(
    metrics: RetrievalMetrics,
    thresholds: Optional[ThresholdsConfig] = None,
) -> list[ThresholdCheck]:
    """
    Check metrics against thresholds.

    Args:
        metrics: Aggregate metrics of a run
        thresholds: Bars to apply (defaults to the configured ones)

    Returns:
        One ThresholdCheck per gated metric (MRR, Precision@K, Hit Rate)
    """
    if thresholds is None:
        thresholds = get_settings().get_effective_eval_config().thresholds

    checks = []
    for name in GATED_METRICS:
        value = metrics.get(name)
        threshold = getattr(thresholds, name.value)
        checks.append(
            ThresholdCheck(
                metric=name,
                label=name.label,
                value=value,
                threshold=threshold,
                passed=value >= threshold,
            )
        )
    return checks


def all_passed(checks: Sequence[ThresholdCheck]) -> bool:
    return all(c.passed for c in checks)


def format_threshold_report(checks: Sequence[ThresholdCheck]) -> str:
    """Format checks as plain text, one line per metric plus a verdict."""
    lines = []
    for c in checks:
        status = "PASS" if c.passed else "FAIL"
        lines.append(f"  {status}  {c.label.ljust(12)} {c.value:.3f} (threshold: {c.threshold:.2f})")

    failed = [c for c in checks if not c.passed]
    if failed:
        lines.append(f"{len(failed)} of {len(checks)} thresholds failed")
    else:
        lines.append("All thresholds passed")
    return "\n".join(lines)
